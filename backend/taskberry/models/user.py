"""User model and the role hierarchy vocabulary."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskberry.db.base import BaseModel


class UserRole(str, Enum):
    """Position in the manager -> supervisor -> member tree."""

    SUPER_ADMIN = "super_admin"
    MANAGER = "manager"
    SUPERVISOR = "supervisor"
    MEMBER = "member"
    PENDING = "pending"


class UserStatus(str, Enum):
    """Account lifecycle, independent of role."""

    ACTIVE = "active"
    PENDING_APPROVAL = "pending_approval"
    SUSPENDED = "suspended"


# Roles a pending user can be approved into
ASSIGNABLE_ROLES = (
    UserRole.SUPER_ADMIN,
    UserRole.MANAGER,
    UserRole.SUPERVISOR,
    UserRole.MEMBER,
)

# Roles that may edit/reassign a task they are assigned to
ELEVATED_ROLES = (UserRole.SUPERVISOR, UserRole.MANAGER, UserRole.SUPER_ADMIN)


class ReportsToKind(str, Enum):
    MANAGER = "manager"
    SUPERVISOR = "supervisor"


@dataclass(frozen=True)
class ReportsTo:
    """One upward link in the hierarchy.

    A user has at most one link of each kind, and the chain is never deeper
    than member -> supervisor -> manager.
    """

    kind: ReportsToKind
    user_id: UUID


class User(BaseModel):
    """An account in the role hierarchy."""

    __tablename__ = "users"

    # Basic info
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Stored lower-cased so the unique index is case-insensitive
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserRole.PENDING.value, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserStatus.PENDING_APPROVAL.value, index=True
    )

    # Hierarchy links
    supervisor_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    manager_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Approval tracking
    approved_by_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Password reset (sha256 of the emailed token)
    reset_password_token_hash: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    reset_password_expires: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    supervisor: Mapped["User | None"] = relationship(
        "User", foreign_keys=[supervisor_id], remote_side="User.id"
    )
    manager: Mapped["User | None"] = relationship(
        "User", foreign_keys=[manager_id], remote_side="User.id"
    )
    approved_by: Mapped["User | None"] = relationship(
        "User", foreign_keys=[approved_by_id], remote_side="User.id"
    )

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

    @property
    def is_pending(self) -> bool:
        return (
            self.status == UserStatus.PENDING_APPROVAL.value
            and self.role == UserRole.PENDING.value
        )

    def has_role(self, *roles: UserRole) -> bool:
        return self.role in {r.value for r in roles}

    @property
    def reports_to(self) -> tuple[ReportsTo, ...]:
        """Upward links, supervisor first.

        Only members report to a supervisor; a supervisor_id left on any other
        role is ignored.
        """
        links: list[ReportsTo] = []
        if self.role == UserRole.MEMBER.value and self.supervisor_id is not None:
            links.append(ReportsTo(ReportsToKind.SUPERVISOR, self.supervisor_id))
        if self.manager_id is not None:
            links.append(ReportsTo(ReportsToKind.MANAGER, self.manager_id))
        return tuple(links)

    def link(self, kind: ReportsToKind) -> UUID | None:
        for reports_to in self.reports_to:
            if reports_to.kind == kind:
                return reports_to.user_id
        return None

    def __repr__(self) -> str:
        try:
            return f"<User {self.email} role={self.role}>"
        except Exception:
            return f"<User id={self.id}>"
