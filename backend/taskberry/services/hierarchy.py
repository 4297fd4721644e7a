"""Hierarchy resolver for the manager -> supervisor -> member tree.

The hierarchy is fixed-depth: a member may report to a supervisor, and a
supervisor (or a member directly) reports to a manager. Nothing is ever
deeper than two hops, so team membership is a bounded lookup rather than a
graph traversal.

The module-level functions are pure and take every record they need as an
argument. ``HierarchyResolver`` does the store reads that feed them. Nothing
is cached; each call reads the current rows, so hierarchy edits take effect
on the next request.
"""

from collections.abc import Iterable, Mapping
from uuid import UUID

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskberry.models.user import ReportsToKind, User, UserRole, UserStatus

logger = structlog.get_logger()


def is_in_manager_team(
    user: User | None,
    manager_id: UUID,
    supervisor: User | None = None,
) -> bool:
    """Check whether ``user`` belongs to the team of ``manager_id``.

    Args:
        user: The user being checked; ``None`` when the id did not resolve.
        manager_id: The manager whose team is in question.
        supervisor: The user's supervisor record, when the user is a member
            with a supervisor link. Needed for the second hop.

    Returns:
        True when the user reports to the manager directly, or is a member
        whose supervisor reports to the manager.
    """
    if user is None:
        return False

    if user.manager_id is not None and user.manager_id == manager_id:
        return True

    supervisor_id = user.link(ReportsToKind.SUPERVISOR)
    if supervisor_id is not None and supervisor is not None and supervisor.id == supervisor_id:
        return supervisor.manager_id is not None and supervisor.manager_id == manager_id

    return False


def assignable_users(actor: User, candidates: Iterable[User]) -> list[User]:
    """Users ``actor`` may set as a task assignee.

    ``candidates`` should be every user in the store; only active ones are
    eligible. Supervisors are looked up among the active candidates, so a
    suspended supervisor no longer carries their members into a manager's
    assignable set.
    """
    active = [u for u in candidates if u.status == UserStatus.ACTIVE.value]
    by_id: Mapping[UUID, User] = {u.id: u for u in active}

    if actor.role == UserRole.SUPER_ADMIN.value:
        return [u for u in active if u.id != actor.id]

    if actor.role == UserRole.MANAGER.value:
        result = []
        for user in active:
            if user.id == actor.id:
                continue
            if user.role == UserRole.MANAGER.value:
                # Peer managers, kept for cross-team reassignment
                result.append(user)
            elif user.role in (UserRole.SUPERVISOR.value, UserRole.MEMBER.value) and (
                user.manager_id == actor.id
            ):
                result.append(user)
            elif user.role == UserRole.MEMBER.value and user.supervisor_id is not None:
                supervisor = by_id.get(user.supervisor_id)
                if supervisor is not None and supervisor.manager_id == actor.id:
                    result.append(user)
        return result

    if actor.role == UserRole.SUPERVISOR.value:
        return [
            u
            for u in active
            if u.id == actor.id
            or (u.role == UserRole.MEMBER.value and u.supervisor_id == actor.id)
        ]

    if actor.role == UserRole.MEMBER.value:
        return [actor] if actor.status == UserStatus.ACTIVE.value else []

    return []


class HierarchyResolver:
    """Loads hierarchy records and applies the pure resolver functions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: UUID | None, *, for_update: bool = False) -> User | None:
        """Fetch a user by id, optionally locking the row for the transaction."""
        if user_id is None:
            return None
        query = select(User).where(User.id == user_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_supervisor_of(self, user: User | None, *, for_update: bool = False) -> User | None:
        """Fetch the record behind a member's supervisor link, if any."""
        if user is None:
            return None
        return await self.get_user(user.link(ReportsToKind.SUPERVISOR), for_update=for_update)

    async def is_in_manager_team(self, user_id: UUID, manager_id: UUID) -> bool:
        user = await self.get_user(user_id)
        supervisor = await self.get_supervisor_of(user)
        return is_in_manager_team(user, manager_id, supervisor)

    async def assignable_users(self, actor: User) -> list[User]:
        if actor.role == UserRole.PENDING.value:
            return []
        result = await self.db.execute(
            select(User).where(User.status == UserStatus.ACTIVE.value).order_by(User.name)
        )
        users = assignable_users(actor, result.scalars().all())
        logger.debug(
            "assignable_users_resolved",
            actor_id=str(actor.id),
            role=actor.role,
            count=len(users),
        )
        return users

    async def manager_team_ids(self, manager_id: UUID) -> set[UUID]:
        """Ids of every user for which ``is_in_manager_team`` holds."""
        supervisor_ids = select(User.id).where(User.manager_id == manager_id)
        result = await self.db.execute(
            select(User.id).where(
                or_(
                    User.manager_id == manager_id,
                    (User.role == UserRole.MEMBER.value)
                    & User.supervisor_id.in_(supervisor_ids),
                )
            )
        )
        return set(result.scalars().all())

    async def supervisor_team_ids(self, supervisor_id: UUID) -> set[UUID]:
        result = await self.db.execute(
            select(User.id).where(User.supervisor_id == supervisor_id)
        )
        return set(result.scalars().all())

    async def visible_assignee_ids(self, actor: User) -> set[UUID] | None:
        """Assignees whose tasks ``actor`` may view, ``None`` meaning all.

        Tasks created by the actor are visible on top of this set.
        """
        if actor.role == UserRole.SUPER_ADMIN.value:
            return None
        if actor.role == UserRole.MANAGER.value:
            return await self.manager_team_ids(actor.id) | {actor.id}
        if actor.role == UserRole.SUPERVISOR.value:
            return await self.supervisor_team_ids(actor.id) | {actor.id}
        if actor.role == UserRole.MEMBER.value:
            return {actor.id}
        return set()

    async def team_members(self, user: User) -> list[User]:
        """Supervisors and members under a manager, or members under a supervisor."""
        if user.role == UserRole.MANAGER.value:
            supervisors = select(User.id).where(
                User.manager_id == user.id,
                User.role == UserRole.SUPERVISOR.value,
            )
            query = select(User).where(
                or_(
                    (User.manager_id == user.id)
                    & User.role.in_([UserRole.SUPERVISOR.value, UserRole.MEMBER.value]),
                    (User.role == UserRole.MEMBER.value) & User.supervisor_id.in_(supervisors),
                )
            )
        elif user.role == UserRole.SUPERVISOR.value:
            query = select(User).where(User.supervisor_id == user.id)
        else:
            return []
        result = await self.db.execute(query.order_by(User.name))
        return list(result.scalars().all())
