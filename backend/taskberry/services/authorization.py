"""Authorization engine.

Every check is a pure function over already-loaded records and returns an
``AccessDecision``. Rules for an operation are OR'd: the first rule that
matches grants access and nothing ever vetoes a grant. The services load the
records, call these functions and raise ``ForbiddenError`` via
``AccessDecision.require()``.
"""

from collections.abc import Collection
from dataclasses import dataclass
from uuid import UUID

from taskberry.exceptions import FieldError, ForbiddenError
from taskberry.models.task import Task
from taskberry.models.user import (
    ASSIGNABLE_ROLES,
    ELEVATED_ROLES,
    User,
    UserRole,
    UserStatus,
)
from taskberry.services.hierarchy import is_in_manager_team


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed

    def require(self) -> None:
        if not self.allowed:
            raise ForbiddenError(self.reason)


def allow(reason: str) -> AccessDecision:
    return AccessDecision(True, reason)


def deny(reason: str) -> AccessDecision:
    return AccessDecision(False, reason)


@dataclass(frozen=True)
class TaskAccess:
    """The records a task permission check looks at."""

    actor: User
    task: Task
    assignee: User | None
    assignee_supervisor: User | None = None

    @property
    def is_creator(self) -> bool:
        return self.task.created_by_id == self.actor.id

    @property
    def is_assignee(self) -> bool:
        return self.task.assignee_id == self.actor.id

    @property
    def manages_assignee(self) -> bool:
        return self.actor.role == UserRole.MANAGER.value and is_in_manager_team(
            self.assignee, self.actor.id, self.assignee_supervisor
        )

    @property
    def supervises_assignee(self) -> bool:
        return (
            self.actor.role == UserRole.SUPERVISOR.value
            and self.assignee is not None
            and self.assignee.supervisor_id == self.actor.id
        )

    @property
    def is_super_admin(self) -> bool:
        return self.actor.role == UserRole.SUPER_ADMIN.value


# =========================================================================
# Task operations
# =========================================================================


def can_view_task(access: TaskAccess) -> AccessDecision:
    if access.is_super_admin:
        return allow("super admin")
    if access.is_creator:
        return allow("task creator")
    if access.manages_assignee:
        return allow("task belongs to manager's team")
    if access.is_assignee and access.actor.has_role(
        UserRole.MANAGER, UserRole.SUPERVISOR, UserRole.MEMBER
    ):
        return allow("task assignee")
    if access.supervises_assignee:
        return allow("task belongs to supervisor's team")
    return deny("Access denied")


def can_create_task(
    actor: User, assignee_id: UUID, assignable_ids: Collection[UUID]
) -> AccessDecision:
    if actor.status != UserStatus.ACTIVE.value:
        return deny("Only active users can create tasks")
    if assignee_id not in assignable_ids:
        return deny("You cannot assign tasks to this user")
    return allow("assignee is assignable")


def can_edit_task(access: TaskAccess) -> AccessDecision:
    if access.is_creator:
        return allow("task creator")
    if access.is_super_admin:
        return allow("super admin")
    if access.manages_assignee:
        return allow("manager editing team task")
    if access.supervises_assignee:
        return allow("supervisor editing team member task")
    if access.is_assignee and access.actor.has_role(*ELEVATED_ROLES):
        return allow("task assignee with appropriate role")
    return deny("You cannot edit this task")


def can_reassign_task(
    access: TaskAccess, new_assignee_id: UUID, assignable_ids: Collection[UUID]
) -> AccessDecision:
    edit = can_edit_task(access)
    if not edit:
        return edit
    if not (
        access.is_creator
        or (access.is_assignee and access.actor.has_role(*ELEVATED_ROLES))
        or access.actor.has_role(UserRole.MANAGER, UserRole.SUPER_ADMIN)
    ):
        return deny("You cannot reassign this task")
    if new_assignee_id not in assignable_ids:
        return deny("You cannot assign tasks to this user")
    return allow("reassignment permitted")


def can_update_task_status(access: TaskAccess) -> AccessDecision:
    if access.is_assignee:
        return allow("task assignee")
    if access.is_creator:
        return allow("task creator")
    if access.manages_assignee:
        return allow("manager updating team task status")
    if access.supervises_assignee:
        return allow("supervisor updating team task status")
    if access.is_super_admin:
        return allow("super admin")
    return deny("You cannot update this task status")


def can_delete_task(access: TaskAccess) -> AccessDecision:
    if access.is_super_admin:
        return allow("super admin")
    if access.actor.role == UserRole.MANAGER.value and (
        access.is_creator or access.manages_assignee
    ):
        return allow("manager deleting own or team task")
    return deny("You cannot delete this task")


def can_view_user_tasks(
    actor: User, target: User | None, target_supervisor: User | None = None
) -> AccessDecision:
    """Whether ``actor`` may list every task assigned to ``target``."""
    if actor.role == UserRole.SUPER_ADMIN.value:
        return allow("super admin")
    if target is not None and target.id == actor.id:
        return allow("own tasks")
    if actor.role == UserRole.MANAGER.value and is_in_manager_team(
        target, actor.id, target_supervisor
    ):
        return allow("member of manager's team")
    if (
        actor.role == UserRole.SUPERVISOR.value
        and target is not None
        and target.supervisor_id == actor.id
    ):
        return allow("member of supervisor's team")
    return deny("Access denied")


# =========================================================================
# User management
# =========================================================================


def can_manage_users(actor: User) -> AccessDecision:
    if actor.role == UserRole.SUPER_ADMIN.value:
        return allow("super admin")
    return deny("Access denied. Super admin privileges required.")


def can_delete_user(actor: User, target: User, referencing_tasks: int = 0) -> AccessDecision:
    manage = can_manage_users(actor)
    if not manage:
        return manage
    if actor.id == target.id:
        return deny("You cannot delete your own account for security reasons.")
    if target.role == UserRole.SUPER_ADMIN.value:
        return deny("Cannot delete another super admin account.")
    if referencing_tasks:
        return deny(
            f"User is still referenced by {referencing_tasks} task(s); "
            "reassign or delete them first."
        )
    return allow("super admin deleting user")


def can_change_role(actor: User, target_id: UUID) -> AccessDecision:
    manage = can_manage_users(actor)
    if not manage:
        return manage
    if actor.id == target_id:
        return deny("You cannot change your own role.")
    return allow("super admin changing role")


def can_change_status(actor: User, target_id: UUID) -> AccessDecision:
    manage = can_manage_users(actor)
    if not manage:
        return manage
    if actor.id == target_id:
        return deny("You cannot change your own status.")
    return allow("super admin changing status")


def validate_role(role: str | None, field: str = "role") -> list[FieldError]:
    if role not in {r.value for r in ASSIGNABLE_ROLES}:
        allowed = ", ".join(r.value for r in ASSIGNABLE_ROLES)
        return [FieldError(field, f"Invalid role. Must be one of: {allowed}")]
    return []


def validate_hierarchy_links(
    role: str | None,
    supervisor_id: UUID | None,
    supervisor: User | None,
    manager_id: UUID | None,
    manager: User | None,
) -> list[FieldError]:
    """Check the parent links a role requires and that they point at the right roles.

    ``supervisor`` / ``manager`` are the records loaded for the supplied ids,
    ``None`` when the id was not supplied or did not resolve.
    """
    errors: list[FieldError] = []

    if role == UserRole.MEMBER.value:
        if supervisor_id is None:
            errors.append(FieldError("supervisor_id", "Members must have a supervisor assigned"))
        if manager_id is None:
            errors.append(FieldError("manager_id", "Members must have a manager assigned"))
    elif role == UserRole.SUPERVISOR.value and manager_id is None:
        errors.append(FieldError("manager_id", "Supervisors must have a manager assigned"))

    if supervisor_id is not None and (
        supervisor is None or supervisor.role != UserRole.SUPERVISOR.value
    ):
        errors.append(
            FieldError("supervisor_id", "Invalid supervisor - user must have supervisor role")
        )
    if manager_id is not None and (manager is None or manager.role != UserRole.MANAGER.value):
        errors.append(FieldError("manager_id", "Invalid manager - user must have manager role"))

    return errors


def validate_approval(
    target: User,
    role: str | None,
    supervisor_id: UUID | None,
    supervisor: User | None,
    manager_id: UUID | None,
    manager: User | None,
) -> list[FieldError]:
    """Every reason an approval request is invalid, empty when it is valid."""
    errors: list[FieldError] = []
    if not target.is_pending:
        errors.append(FieldError("user", "User is not pending approval"))
    errors.extend(validate_role(role))
    errors.extend(validate_hierarchy_links(role, supervisor_id, supervisor, manager_id, manager))
    return errors
