"""SQLAlchemy models package."""

from taskberry.models.user import (
    ASSIGNABLE_ROLES,
    ELEVATED_ROLES,
    ReportsTo,
    ReportsToKind,
    User,
    UserRole,
    UserStatus,
)
from taskberry.models.task import Task, TaskPriority, TaskStatus

__all__ = [
    # Users
    "ASSIGNABLE_ROLES",
    "ELEVATED_ROLES",
    "ReportsTo",
    "ReportsToKind",
    "User",
    "UserRole",
    "UserStatus",
    # Tasks
    "Task",
    "TaskPriority",
    "TaskStatus",
]
