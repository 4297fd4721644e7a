"""User management service: approval workflow, roles, status and deletion."""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskberry.exceptions import ConflictError, FieldError, NotFoundError, ValidationError
from taskberry.models.task import Task, utcnow
from taskberry.models.user import User, UserRole, UserStatus
from taskberry.services.authorization import (
    can_change_role,
    can_change_status,
    can_delete_user,
    can_manage_users,
    validate_approval,
    validate_hierarchy_links,
    validate_role,
)
from taskberry.services.email import Notifier
from taskberry.services.hierarchy import HierarchyResolver

logger = structlog.get_logger()

DEFAULT_REJECTION_REASON = "No specific reason provided"


@dataclass
class ApprovalResult:
    user: User
    email_sent: bool


class UserService:
    """Service for super-admin user management and hierarchy lookups."""

    def __init__(self, db: AsyncSession, notifier: Notifier | None = None):
        self.db = db
        self.notifier = notifier
        self.hierarchy = HierarchyResolver(db)

    # =========================================================================
    # Loading
    # =========================================================================

    def _with_links(self):
        return select(User).options(
            selectinload(User.supervisor),
            selectinload(User.manager),
            selectinload(User.approved_by),
        ).execution_options(populate_existing=True)

    async def _load_user(self, user_id: UUID) -> User:
        """Fetch a user with hierarchy links populated."""
        result = await self.db.execute(self._with_links().where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def _require_user(self, user_id: UUID, *, for_update: bool = False) -> User:
        user = await self.hierarchy.get_user(user_id, for_update=for_update)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def get_by_email(self, email: str) -> User | None:
        result = await self.db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_users(self, actor: User) -> list[User]:
        can_manage_users(actor).require()
        result = await self.db.execute(self._with_links().order_by(User.created_at.desc()))
        return list(result.scalars().all())

    async def list_pending_users(self, actor: User) -> list[User]:
        can_manage_users(actor).require()
        result = await self.db.execute(
            self._with_links()
            .where(
                User.status == UserStatus.PENDING_APPROVAL.value,
                User.role == UserRole.PENDING.value,
            )
            .order_by(User.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_active_users(self) -> list[User]:
        result = await self.db.execute(
            self._with_links()
            .where(User.status == UserStatus.ACTIVE.value)
            .order_by(User.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_users_by_role(self, role: str) -> list[User]:
        errors = validate_role(role)
        if errors:
            raise ValidationError(errors, message="Invalid role specified")
        result = await self.db.execute(
            self._with_links()
            .where(User.role == role, User.status == UserStatus.ACTIVE.value)
            .order_by(User.name)
        )
        return list(result.scalars().all())

    async def get_user(self, user_id: UUID) -> User:
        return await self._load_user(user_id)

    async def team_members(self, user_id: UUID) -> list[User]:
        user = await self._require_user(user_id)
        members = await self.hierarchy.team_members(user)
        if not members:
            return []
        result = await self.db.execute(
            self._with_links()
            .where(User.id.in_([m.id for m in members]))
            .order_by(User.name)
        )
        return list(result.scalars().all())

    async def count_referencing_tasks(self, user_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(Task.id)).where(
                or_(Task.assignee_id == user_id, Task.created_by_id == user_id)
            )
        )
        return result.scalar() or 0

    # =========================================================================
    # Approval workflow
    # =========================================================================

    async def approve_user(
        self,
        actor: User,
        target_id: UUID,
        role: str | None,
        supervisor_id: UUID | None = None,
        manager_id: UUID | None = None,
    ) -> ApprovalResult:
        """Activate a pending user into a real role with its hierarchy links."""
        can_manage_users(actor).require()

        target = await self._require_user(target_id, for_update=True)
        supervisor = await self.hierarchy.get_user(supervisor_id)
        manager = await self.hierarchy.get_user(manager_id)

        errors = validate_approval(target, role, supervisor_id, supervisor, manager_id, manager)
        if errors:
            logger.info(
                "user_approval_rejected",
                target_id=str(target_id),
                fields=[e.field for e in errors],
            )
            raise ValidationError(errors)

        target.status = UserStatus.ACTIVE.value
        target.role = role
        # Links not supplied are cleared rather than left over
        target.supervisor_id = supervisor_id
        target.manager_id = manager_id
        target.approved_by_id = actor.id
        target.approved_at = utcnow()
        await self.db.commit()

        user = await self._load_user(target_id)
        logger.info(
            "user_approved",
            user_id=str(user.id),
            role=role,
            supervisor_id=str(supervisor_id) if supervisor_id else None,
            manager_id=str(manager_id) if manager_id else None,
            approved_by=str(actor.id),
        )

        email_sent = False
        if self.notifier is not None:
            try:
                email_sent = await self.notifier.send_approval_email(user, role, actor)
            except Exception as e:
                logger.warning("approval_email_failed", user_id=str(user.id), error=str(e))

        return ApprovalResult(user=user, email_sent=email_sent)

    async def reject_user(self, actor: User, target_id: UUID, reason: str | None = None) -> User:
        """Permanently delete a pending user, then notify them. Returns the removed record."""
        can_manage_users(actor).require()

        target = await self._require_user(target_id, for_update=True)
        if not target.is_pending:
            raise ValidationError.single("user", "Can only reject pending users")

        await self.db.delete(target)
        await self.db.commit()
        logger.info("user_rejected", user_id=str(target_id), email=target.email, rejected_by=str(actor.id))

        if self.notifier is not None:
            try:
                await self.notifier.send_rejection_email(
                    target, reason or DEFAULT_REJECTION_REASON, actor.email
                )
            except Exception as e:
                logger.warning("rejection_email_failed", user_id=str(target_id), error=str(e))

        return target

    # =========================================================================
    # Administration
    # =========================================================================

    async def delete_user(self, actor: User, target_id: UUID) -> User:
        """Permanently delete a user who no longer owns or is assigned any task."""
        can_manage_users(actor).require()
        if actor.id == target_id:
            can_delete_user(actor, actor).require()

        target = await self._require_user(target_id, for_update=True)
        referencing = await self.count_referencing_tasks(target_id)
        can_delete_user(actor, target, referencing).require()

        await self.db.delete(target)
        await self.db.commit()

        logger.info(
            "user_deleted",
            user_id=str(target_id),
            email=target.email,
            role=target.role,
            deleted_by=str(actor.id),
        )
        return target

    async def change_user_role(self, actor: User, target_id: UUID, role: str) -> User:
        can_change_role(actor, target_id).require()
        errors = validate_role(role)
        if errors:
            raise ValidationError(errors)

        target = await self._require_user(target_id, for_update=True)
        if target.status == UserStatus.PENDING_APPROVAL.value:
            raise ValidationError.single("role", "Pending users must be approved first")
        old_role = target.role
        target.role = role
        await self.db.commit()

        logger.info(
            "user_role_changed",
            user_id=str(target_id),
            old_role=old_role,
            new_role=role,
            changed_by=str(actor.id),
        )
        return await self._load_user(target_id)

    async def set_user_status(self, actor: User, target_id: UUID, status: str) -> User:
        """Suspend or reactivate an approved user."""
        can_change_status(actor, target_id).require()
        if status not in (UserStatus.ACTIVE.value, UserStatus.SUSPENDED.value):
            raise ValidationError.single("status", "Status must be one of: active, suspended")

        target = await self._require_user(target_id, for_update=True)
        if target.status == UserStatus.PENDING_APPROVAL.value:
            raise ValidationError.single(
                "status", "Pending users must be approved or rejected first"
            )

        old_status = target.status
        target.status = status
        await self.db.commit()

        logger.info(
            "user_status_changed",
            user_id=str(target_id),
            old_status=old_status,
            new_status=status,
            changed_by=str(actor.id),
        )
        return await self._load_user(target_id)

    async def update_user(self, actor: User, target_id: UUID, fields: dict[str, Any]) -> User:
        """Edit profile fields and hierarchy links of another user."""
        can_manage_users(actor).require()
        target = await self._require_user(target_id, for_update=True)

        errors: list[FieldError] = []
        if "name" in fields and not (fields["name"] or "").strip():
            errors.append(FieldError("name", "Name cannot be empty"))

        supervisor_id = fields.get("supervisor_id", target.supervisor_id)
        manager_id = fields.get("manager_id", target.manager_id)
        if "supervisor_id" in fields or "manager_id" in fields:
            errors.extend(
                validate_hierarchy_links(
                    target.role if not target.is_pending else None,
                    supervisor_id,
                    await self.hierarchy.get_user(supervisor_id),
                    manager_id,
                    await self.hierarchy.get_user(manager_id),
                )
            )
        if errors:
            raise ValidationError(errors)

        email = fields.get("email")
        if email is not None:
            email = email.strip().lower()
            existing = await self.get_by_email(email)
            if existing is not None and existing.id != target.id:
                raise ConflictError("Email already in use")

        if "name" in fields:
            target.name = fields["name"].strip()
        if email is not None:
            target.email = email
        if "avatar_url" in fields:
            target.avatar_url = fields["avatar_url"]
        target.supervisor_id = supervisor_id
        target.manager_id = manager_id
        await self.db.commit()

        logger.info("user_updated", user_id=str(target_id), fields=sorted(fields), updated_by=str(actor.id))
        return await self._load_user(target_id)
