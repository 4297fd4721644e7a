# tests/test_hierarchy.py

from __future__ import annotations

from uuid import uuid4

import pytest

from taskberry.models.user import ReportsTo, ReportsToKind, User, UserRole, UserStatus
from taskberry.services.hierarchy import HierarchyResolver, assignable_users, is_in_manager_team


def user(
    name: str,
    role: UserRole = UserRole.MEMBER,
    status: UserStatus = UserStatus.ACTIVE,
    supervisor: User | None = None,
    manager: User | None = None,
) -> User:
    """Transient user record; the pure resolver never touches the database."""
    return User(
        id=uuid4(),
        name=name,
        email=f"{name.lower()}@example.com",
        password_hash="x",
        role=role.value,
        status=status.value,
        supervisor_id=supervisor.id if supervisor else None,
        manager_id=manager.id if manager else None,
    )


def ids(users: list[User]) -> set:
    return {u.id for u in users}


def test_reports_to_lists_supervisor_before_manager() -> None:
    m = user("m", UserRole.MANAGER)
    s = user("s", UserRole.SUPERVISOR, manager=m)
    x = user("x", supervisor=s, manager=m)

    assert x.reports_to == (
        ReportsTo(ReportsToKind.SUPERVISOR, s.id),
        ReportsTo(ReportsToKind.MANAGER, m.id),
    )
    assert s.reports_to == (ReportsTo(ReportsToKind.MANAGER, m.id),)
    assert m.reports_to == ()


def test_supervisor_link_only_counts_for_members() -> None:
    m = user("m", UserRole.MANAGER)
    s = user("s", UserRole.SUPERVISOR, manager=m)
    odd = user("odd", UserRole.SUPERVISOR, supervisor=s)

    assert odd.link(ReportsToKind.SUPERVISOR) is None
    assert not is_in_manager_team(odd, m.id, s)


def test_member_in_manager_team_directly_or_through_supervisor() -> None:
    m1 = user("m1", UserRole.MANAGER)
    m2 = user("m2", UserRole.MANAGER)
    s1 = user("s1", UserRole.SUPERVISOR, manager=m1)

    direct = user("direct", manager=m1)
    via_supervisor = user("via", supervisor=s1)
    elsewhere = user("elsewhere", manager=m2)

    assert is_in_manager_team(direct, m1.id)
    assert is_in_manager_team(via_supervisor, m1.id, s1)
    assert not is_in_manager_team(via_supervisor, m2.id, s1)
    assert not is_in_manager_team(elsewhere, m1.id)
    assert not is_in_manager_team(None, m1.id)


def test_second_hop_needs_the_matching_supervisor_record() -> None:
    m1 = user("m1", UserRole.MANAGER)
    s1 = user("s1", UserRole.SUPERVISOR, manager=m1)
    other = user("other", UserRole.SUPERVISOR, manager=m1)
    x = user("x", supervisor=s1)

    assert not is_in_manager_team(x, m1.id, None)
    assert not is_in_manager_team(x, m1.id, other)


@pytest.fixture()
def people() -> dict[str, User]:
    admin = user("admin", UserRole.SUPER_ADMIN)
    m1 = user("m1", UserRole.MANAGER)
    m2 = user("m2", UserRole.MANAGER)
    s1 = user("s1", UserRole.SUPERVISOR, manager=m1)
    s2 = user("s2", UserRole.SUPERVISOR, manager=m2)
    x = user("x", supervisor=s1)
    y = user("y", supervisor=s2, manager=m2)
    direct = user("direct", manager=m1)
    gone = user("gone", supervisor=s1, manager=m1, status=UserStatus.SUSPENDED)
    waiting = user("waiting", UserRole.PENDING, UserStatus.PENDING_APPROVAL)
    return dict(
        admin=admin, m1=m1, m2=m2, s1=s1, s2=s2, x=x, y=y,
        direct=direct, gone=gone, waiting=waiting,
    )


def test_manager_assigns_own_team_and_peer_managers(people) -> None:
    p = people
    result = assignable_users(p["m1"], p.values())

    assert ids(result) == {p["m2"].id, p["s1"].id, p["x"].id, p["direct"].id}
    assert p["m1"].id not in ids(result)


def test_manager_loses_members_of_a_suspended_supervisor(people) -> None:
    p = people
    p["s1"].status = UserStatus.SUSPENDED.value

    assert ids(assignable_users(p["m1"], p.values())) == {p["m2"].id, p["direct"].id}


def test_supervisor_assigns_self_and_own_members(people) -> None:
    p = people
    assert ids(assignable_users(p["s1"], p.values())) == {p["s1"].id, p["x"].id}


def test_member_assigns_only_self(people) -> None:
    p = people
    assert assignable_users(p["x"], p.values()) == [p["x"]]
    assert assignable_users(p["gone"], p.values()) == []


def test_super_admin_assigns_every_active_user_but_self(people) -> None:
    p = people
    result = ids(assignable_users(p["admin"], p.values()))

    assert p["admin"].id not in result
    assert p["gone"].id not in result
    assert p["waiting"].id not in result
    assert {p["m1"].id, p["m2"].id, p["s1"].id, p["s2"].id, p["x"].id, p["y"].id} <= result


def test_pending_user_assigns_nobody(people) -> None:
    assert assignable_users(people["waiting"], people.values()) == []


def test_member_only_assignable_by_own_chain_or_admin(people) -> None:
    p = people
    x = p["x"]
    allowed = {p["admin"].id, p["m1"].id, p["s1"].id, x.id}

    for actor in p.values():
        if x.id in ids(assignable_users(actor, p.values())):
            assert actor.id in allowed, actor.name


@pytest.mark.asyncio
async def test_resolver_team_ids_agree_with_pure_check(db, org) -> None:
    resolver = HierarchyResolver(db)

    team = await resolver.manager_team_ids(org.m1.id)

    assert team == {org.s1.id, org.x.id, org.direct.id}
    for member in (org.x, org.y, org.direct):
        assert (member.id in team) == await resolver.is_in_manager_team(member.id, org.m1.id)


@pytest.mark.asyncio
async def test_resolver_visible_assignees(db, org) -> None:
    resolver = HierarchyResolver(db)

    assert await resolver.visible_assignee_ids(org.admin) is None
    assert await resolver.visible_assignee_ids(org.s1) == {org.s1.id, org.x.id}
    assert await resolver.visible_assignee_ids(org.x) == {org.x.id}
    assert org.m1.id in await resolver.visible_assignee_ids(org.m1)


@pytest.mark.asyncio
async def test_resolver_team_members(db, org) -> None:
    resolver = HierarchyResolver(db)

    assert ids(await resolver.team_members(org.m1)) == {org.s1.id, org.x.id, org.direct.id}
    assert ids(await resolver.team_members(org.s2)) == {org.y.id}
    assert await resolver.team_members(org.x) == []
