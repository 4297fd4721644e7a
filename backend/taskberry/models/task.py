"""Task model."""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskberry.db.base import BaseModel

if TYPE_CHECKING:
    from taskberry.models.user import User


class TaskStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Task(BaseModel):
    """A unit of work assigned to exactly one user."""

    __tablename__ = "tasks"

    # Basic info
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    remarks: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Status and priority
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskStatus.NOT_STARTED.value, index=True
    )
    priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskPriority.MEDIUM.value
    )

    # Ownership and assignment. Users referenced here cannot be deleted.
    assignee_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    created_by_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Timeline
    assigned_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    target_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    # Tags
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Relationships
    assignee: Mapped["User"] = relationship("User", foreign_keys=[assignee_id])
    created_by: Mapped["User"] = relationship("User", foreign_keys=[created_by_id])

    __mapper_args__ = {"version_id_col": version}

    def apply_status(self, status: str, now: datetime | None = None) -> None:
        """Set status and keep completed_date in step with it.

        completed_date is set only on the transition into completed and cleared
        on the transition out; writing the current status again is a no-op.
        """
        if status == self.status:
            return
        if status == TaskStatus.COMPLETED.value:
            self.completed_date = now or utcnow()
        elif self.status == TaskStatus.COMPLETED.value:
            self.completed_date = None
        self.status = status

    def touch(self, now: datetime | None = None) -> None:
        self.last_updated = now or utcnow()

    def __repr__(self) -> str:
        return f"<Task {self.id} status={self.status}>"
