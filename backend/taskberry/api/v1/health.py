"""Health check endpoints."""

import structlog
from fastapi import APIRouter
from fastapi.responses import ORJSONResponse
from sqlalchemy import text

from taskberry.config import get_settings
from taskberry.db.session import STORE_FAILURES, DBSession

router = APIRouter()
logger = structlog.get_logger()
settings = get_settings()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness: the process is up."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check(db: DBSession) -> ORJSONResponse:
    """Readiness: the database answers. 503 when it does not."""
    checks: dict[str, str] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except STORE_FAILURES as e:
        logger.warning("readiness_database_unhealthy", error=str(e))
        checks["database"] = "unhealthy"

    healthy = all(v == "healthy" for v in checks.values())
    return ORJSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "version": settings.app_version,
            "checks": checks,
        },
    )
