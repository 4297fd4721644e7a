"""Tasks API endpoints."""

from datetime import date, datetime, time, timezone
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator

from taskberry.api.v1.auth import CurrentUser, UserSummary
from taskberry.db.session import DBSession
from taskberry.models.task import Task
from taskberry.models.user import User
from taskberry.services.tasks import TaskService

router = APIRouter()
logger = structlog.get_logger()


def parse_target_date(value: Any) -> Any:
    """Accept a bare ``YYYY-MM-DD`` as midnight UTC; pass anything else through."""
    if isinstance(value, str) and len(value) == 10:
        try:
            value = date.fromisoformat(value)
        except ValueError:
            return value
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return value


# Request/Response Models
class TaskCreate(BaseModel):
    """Create a new task."""

    title: str = Field(..., max_length=500)
    description: str = ""
    remarks: str = ""
    assignee_id: UUID
    target_date: datetime
    status: str | None = None
    priority: str | None = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("target_date", mode="before")
    @classmethod
    def parse_target_date_field(cls, v: Any) -> Any:
        return parse_target_date(v)


class TaskUpdate(BaseModel):
    """Update a task. Omitted fields are left alone."""

    title: str | None = Field(None, max_length=500)
    description: str | None = None
    remarks: str | None = None
    assignee_id: UUID | None = None
    target_date: datetime | None = None
    status: str | None = None
    priority: str | None = None
    tags: list[str] | None = None

    @field_validator("target_date", mode="before")
    @classmethod
    def parse_target_date_field(cls, v: Any) -> Any:
        return parse_target_date(v)


class TaskStatusUpdate(BaseModel):
    status: str


class TaskResponse(BaseModel):
    """Task response."""

    id: UUID
    title: str
    description: str
    remarks: str
    status: str
    priority: str
    tags: list[str]
    assignee_id: UUID
    created_by_id: UUID
    assignee: UserSummary
    created_by: UserSummary
    assigned_date: datetime
    target_date: datetime
    completed_date: datetime | None
    last_updated: datetime
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


def get_task_service(db: DBSession) -> TaskService:
    return TaskService(db)


Tasks = Annotated[TaskService, Depends(get_task_service)]


@router.get("/assignable-users", response_model=list[UserSummary])
async def list_assignable_users(current_user: CurrentUser, tasks: Tasks) -> list[User]:
    """Users the caller may assign tasks to."""
    return await tasks.list_assignable_users(current_user)


@router.get("", response_model=list[TaskResponse])
async def list_tasks(
    current_user: CurrentUser,
    tasks: Tasks,
    status_filter: str | None = Query(None, alias="status"),
    priority: str | None = None,
) -> list[Task]:
    """List the tasks visible to the caller, most recently updated first."""
    return await tasks.list_tasks(current_user, status=status_filter, priority=priority)


@router.get("/user/{user_id}", response_model=list[TaskResponse])
async def list_user_tasks(user_id: UUID, current_user: CurrentUser, tasks: Tasks) -> list[Task]:
    """Tasks assigned to one user, for their managers and supervisors."""
    return await tasks.list_user_tasks(current_user, user_id)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: UUID, current_user: CurrentUser, tasks: Tasks) -> Task:
    return await tasks.get_task(current_user, task_id)


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(task_data: TaskCreate, current_user: CurrentUser, tasks: Tasks) -> Task:
    """Create a task for a user the caller may assign to."""
    return await tasks.create_task(current_user, task_data.model_dump())


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID,
    updates: TaskUpdate,
    current_user: CurrentUser,
    tasks: Tasks,
) -> Task:
    return await tasks.update_task(current_user, task_id, updates.model_dump(exclude_unset=True))


@router.put("/{task_id}/status", response_model=TaskResponse)
async def update_task_status(
    task_id: UUID,
    request: TaskStatusUpdate,
    current_user: CurrentUser,
    tasks: Tasks,
) -> Task:
    return await tasks.update_task_status(current_user, task_id, request.status)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: UUID, current_user: CurrentUser, tasks: Tasks) -> None:
    await tasks.delete_task(current_user, task_id)
