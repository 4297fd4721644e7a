"""Task service: visibility-filtered reads and authorized mutations."""

from collections.abc import Iterable
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from taskberry.exceptions import ConflictError, FieldError, NotFoundError, ValidationError
from taskberry.models.task import Task, TaskPriority, TaskStatus, utcnow
from taskberry.models.user import User
from taskberry.services.authorization import (
    TaskAccess,
    can_create_task,
    can_delete_task,
    can_edit_task,
    can_reassign_task,
    can_update_task_status,
    can_view_task,
    can_view_user_tasks,
)
from taskberry.services.hierarchy import HierarchyResolver

logger = structlog.get_logger()

TASK_STATUSES = {s.value for s in TaskStatus}
TASK_PRIORITIES = {p.value for p in TaskPriority}

# Fields update_task accepts; anything else is ignored
EDITABLE_FIELDS = (
    "title",
    "description",
    "assignee_id",
    "target_date",
    "status",
    "priority",
    "tags",
    "remarks",
)


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """Strip, drop blanks and de-duplicate while keeping first-seen order."""
    seen: dict[str, None] = {}
    for tag in tags or []:
        tag = tag.strip()
        if tag:
            seen.setdefault(tag, None)
    return list(seen)


def validate_task_fields(fields: dict[str, Any], *, creating: bool) -> list[FieldError]:
    """Every problem with a create/update payload."""
    errors: list[FieldError] = []

    if creating or "title" in fields:
        title = fields.get("title")
        if not isinstance(title, str) or not title.strip():
            errors.append(FieldError("title", "Title is required and cannot be empty"))

    if creating and fields.get("assignee_id") is None:
        errors.append(FieldError("assignee_id", "Assignee is required"))

    if creating or "target_date" in fields:
        if not isinstance(fields.get("target_date"), datetime):
            errors.append(FieldError("target_date", "A valid target date is required"))

    status = fields.get("status")
    if status is not None and status not in TASK_STATUSES:
        errors.append(FieldError("status", "Invalid status value"))

    priority = fields.get("priority")
    if priority is not None and priority not in TASK_PRIORITIES:
        errors.append(FieldError("priority", "Invalid priority value"))

    return errors


class TaskService:
    """Runs each task operation as load -> authorize -> read/mutate."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.hierarchy = HierarchyResolver(db)

    # =========================================================================
    # Loading
    # =========================================================================

    async def _get_task(self, task_id: UUID, *, for_update: bool = False) -> Task:
        query = select(Task).where(Task.id == task_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        task = result.scalar_one_or_none()
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def _load_task(self, task_id: UUID) -> Task:
        """Fetch a task with assignee and creator populated, refreshing stale state."""
        result = await self.db.execute(
            select(Task)
            .options(selectinload(Task.assignee), selectinload(Task.created_by))
            .where(Task.id == task_id)
            .execution_options(populate_existing=True)
        )
        task = result.scalar_one_or_none()
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def _access(self, actor: User, task: Task, *, for_update: bool = False) -> TaskAccess:
        """Read the hierarchy rows a permission check for ``task`` depends on.

        With ``for_update`` the rows stay locked until the write commits, so a
        concurrent hierarchy edit cannot slip between check and write.
        """
        assignee = await self.hierarchy.get_user(task.assignee_id, for_update=for_update)
        supervisor = await self.hierarchy.get_supervisor_of(assignee, for_update=for_update)
        return TaskAccess(actor=actor, task=task, assignee=assignee, assignee_supervisor=supervisor)

    async def _commit(self, task_id: UUID) -> None:
        try:
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning("task_write_conflict", task_id=str(task_id))
            raise ConflictError("Task was modified concurrently, please retry") from e

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_assignable_users(self, actor: User) -> list[User]:
        return await self.hierarchy.assignable_users(actor)

    async def list_tasks(
        self,
        actor: User,
        status: str | None = None,
        priority: str | None = None,
    ) -> list[Task]:
        """Tasks the actor can view, most recently updated first."""
        query = (
            select(Task)
            .options(selectinload(Task.assignee), selectinload(Task.created_by))
            .execution_options(populate_existing=True)
        )

        visible = await self.hierarchy.visible_assignee_ids(actor)
        if visible is not None:
            query = query.where(
                or_(Task.assignee_id.in_(visible), Task.created_by_id == actor.id)
            )
        if status:
            query = query.where(Task.status == status)
        if priority:
            query = query.where(Task.priority == priority)

        result = await self.db.execute(query.order_by(Task.last_updated.desc()))
        return list(result.scalars().all())

    async def get_task(self, actor: User, task_id: UUID) -> Task:
        task = await self._load_task(task_id)
        can_view_task(await self._access(actor, task)).require()
        return task

    async def list_user_tasks(self, actor: User, user_id: UUID) -> list[Task]:
        """Every task assigned to ``user_id``, when the actor may see that user's work."""
        target = await self.hierarchy.get_user(user_id)
        if target is None:
            raise NotFoundError("User", user_id)
        supervisor = await self.hierarchy.get_supervisor_of(target)
        can_view_user_tasks(actor, target, supervisor).require()

        result = await self.db.execute(
            select(Task)
            .options(selectinload(Task.assignee), selectinload(Task.created_by))
            .where(Task.assignee_id == user_id)
            .order_by(Task.last_updated.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_task(self, actor: User, fields: dict[str, Any]) -> Task:
        errors = validate_task_fields(fields, creating=True)
        assignee_id = fields.get("assignee_id")
        if assignee_id is not None and await self.hierarchy.get_user(assignee_id) is None:
            errors.append(FieldError("assignee_id", "Assignee not found"))
        if errors:
            raise ValidationError(errors)

        assignable = await self.hierarchy.assignable_users(actor)
        can_create_task(actor, assignee_id, {u.id for u in assignable}).require()

        now = utcnow()
        status = fields.get("status") or TaskStatus.NOT_STARTED.value
        task = Task(
            title=fields["title"].strip(),
            description=(fields.get("description") or "").strip(),
            remarks=(fields.get("remarks") or "").strip(),
            assignee_id=assignee_id,
            created_by_id=actor.id,
            target_date=fields["target_date"],
            status=status,
            priority=fields.get("priority") or TaskPriority.MEDIUM.value,
            tags=normalize_tags(fields.get("tags")),
            assigned_date=now,
            last_updated=now,
            completed_date=now if status == TaskStatus.COMPLETED.value else None,
        )
        self.db.add(task)
        await self.db.commit()

        logger.info(
            "task_created",
            task_id=str(task.id),
            assignee_id=str(assignee_id),
            created_by=str(actor.id),
        )
        return await self._load_task(task.id)

    async def update_task(self, actor: User, task_id: UUID, fields: dict[str, Any]) -> Task:
        changes = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}

        task = await self._get_task(task_id, for_update=True)
        access = await self._access(actor, task, for_update=True)
        decision = can_edit_task(access)
        if not decision:
            logger.info(
                "task_edit_denied",
                task_id=str(task_id),
                actor_id=str(actor.id),
                role=actor.role,
            )
        decision.require()

        new_assignee_id = changes.get("assignee_id")
        if new_assignee_id is not None and new_assignee_id != task.assignee_id:
            if await self.hierarchy.get_user(new_assignee_id, for_update=True) is None:
                raise ValidationError.single("assignee_id", "New assignee not found")
            assignable = await self.hierarchy.assignable_users(actor)
            can_reassign_task(access, new_assignee_id, {u.id for u in assignable}).require()
        else:
            changes.pop("assignee_id", None)

        errors = validate_task_fields(changes, creating=False)
        if errors:
            raise ValidationError(errors)

        now = utcnow()
        for field, value in changes.items():
            if field == "status":
                if value is not None:
                    task.apply_status(value, now)
            elif field == "tags":
                task.tags = normalize_tags(value)
            elif field in ("title", "description", "remarks"):
                setattr(task, field, (value or "").strip())
            elif value is not None:
                setattr(task, field, value)
        task.touch(now)

        await self._commit(task_id)
        logger.info("task_updated", task_id=str(task_id), fields=sorted(changes))
        return await self._load_task(task_id)

    async def update_task_status(self, actor: User, task_id: UUID, status: str) -> Task:
        if status not in TASK_STATUSES:
            raise ValidationError.single("status", "Invalid status value")

        task = await self._get_task(task_id, for_update=True)
        can_update_task_status(await self._access(actor, task, for_update=True)).require()

        old_status = task.status
        now = utcnow()
        task.apply_status(status, now)
        task.touch(now)

        await self._commit(task_id)
        logger.info(
            "task_status_updated",
            task_id=str(task_id),
            old_status=old_status,
            new_status=status,
        )
        return await self._load_task(task_id)

    async def delete_task(self, actor: User, task_id: UUID) -> None:
        task = await self._get_task(task_id, for_update=True)
        can_delete_task(await self._access(actor, task, for_update=True)).require()

        await self.db.delete(task)
        await self._commit(task_id)
        logger.info("task_deleted", task_id=str(task_id), deleted_by=str(actor.id))
