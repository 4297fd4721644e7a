"""Domain exceptions.

Services raise these instead of HTTP errors so the same operations can be
driven from tests or other transports. ``taskberry.main`` maps each one to a
status code.
"""

from dataclasses import dataclass


class TaskBerryError(Exception):
    """Base exception for domain errors."""

    status_code = 500

    def __init__(self, message: str, code: str = "ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(TaskBerryError):
    """An entity id did not resolve."""

    status_code = 404

    def __init__(self, entity: str, entity_id: object | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message=f"{entity} not found", code="NOT_FOUND")


class ForbiddenError(TaskBerryError):
    """The actor is authenticated but not allowed to do this."""

    status_code = 403

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(message=reason, code="FORBIDDEN")


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class ValidationError(TaskBerryError):
    """Malformed input. Carries every violated field, not just the first."""

    status_code = 400

    def __init__(self, errors: list[FieldError], message: str = "Validation error"):
        self.errors = errors
        super().__init__(message=message, code="VALIDATION_ERROR")

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([FieldError(field, message)], message=message)


class ConflictError(TaskBerryError):
    """The write collides with existing state (duplicate email, stale row)."""

    status_code = 409

    def __init__(self, message: str):
        super().__init__(message=message, code="CONFLICT")


class UnauthenticatedError(TaskBerryError):
    """Missing, malformed or expired credential."""

    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message=message, code="UNAUTHENTICATED")


class StoreUnavailableError(TaskBerryError):
    """The database could not be reached or timed out."""

    status_code = 503

    def __init__(self, message: str = "Data store unavailable"):
        super().__init__(message=message, code="STORE_UNAVAILABLE")
