# tests/test_user_service.py

from __future__ import annotations

from uuid import uuid4

import pytest
import pytest_asyncio

from taskberry.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from taskberry.models.user import User, UserRole, UserStatus
from taskberry.services.users import UserService

from .fakes import FakeNotifier


@pytest.fixture()
def service(db, notifier) -> UserService:
    return UserService(db, notifier)


@pytest_asyncio.fixture()
async def pending(make_user):
    return await make_user("Newcomer", UserRole.PENDING, UserStatus.PENDING_APPROVAL)


@pytest.mark.asyncio
async def test_approve_member_sets_links_and_notifies(service, org, pending, notifier) -> None:
    result = await service.approve_user(
        org.admin, pending.id, "member", supervisor_id=org.s1.id, manager_id=org.m1.id
    )

    user = result.user
    assert result.email_sent
    assert (user.role, user.status) == ("member", "active")
    assert user.supervisor.id == org.s1.id
    assert user.manager.id == org.m1.id
    assert user.approved_by.id == org.admin.id
    assert user.approved_at is not None

    [email] = notifier.of_kind("approval")
    assert email.to == pending.email
    assert email.data["supervisor"] == "Supervisor One"
    assert email.data["manager"] == "Manager One"


@pytest.mark.asyncio
async def test_approve_member_without_links_lists_both_fields(service, org, pending) -> None:
    with pytest.raises(ValidationError) as exc:
        await service.approve_user(org.admin, pending.id, "member")

    assert {e.field for e in exc.value.errors} == {"supervisor_id", "manager_id"}
    assert (await service.get_user(pending.id)).status == "pending_approval"


@pytest.mark.asyncio
async def test_approve_rejects_wrong_role_links_and_unknown_role(service, org, pending) -> None:
    with pytest.raises(ValidationError) as exc:
        await service.approve_user(
            org.admin, pending.id, "wizard", supervisor_id=org.m1.id, manager_id=uuid4()
        )

    assert {e.field for e in exc.value.errors} == {"role", "supervisor_id", "manager_id"}


@pytest.mark.asyncio
async def test_approve_supervisor_clears_unsupplied_links(service, org, pending) -> None:
    result = await service.approve_user(org.admin, pending.id, "supervisor", manager_id=org.m2.id)

    assert result.user.supervisor_id is None
    assert result.user.manager_id == org.m2.id


@pytest.mark.asyncio
async def test_only_pending_users_can_be_approved(service, org) -> None:
    with pytest.raises(ValidationError) as exc:
        await service.approve_user(org.admin, org.x.id, "manager")

    assert [e.field for e in exc.value.errors] == ["user"]


@pytest.mark.asyncio
async def test_non_admin_cannot_approve(service, org, pending) -> None:
    with pytest.raises(ForbiddenError):
        await service.approve_user(org.m1, pending.id, "manager")


@pytest.mark.asyncio
async def test_approval_survives_email_failure(db, org, pending) -> None:
    service = UserService(db, FakeNotifier(fail=True))

    result = await service.approve_user(org.admin, pending.id, "manager")

    assert not result.email_sent
    assert result.user.status == "active"


@pytest.mark.asyncio
async def test_reject_removes_pending_user(service, org, pending, notifier) -> None:
    await service.reject_user(org.admin, pending.id, "Unknown applicant")

    with pytest.raises(NotFoundError):
        await service.get_user(pending.id)
    [email] = notifier.of_kind("rejection")
    assert email.data == {"reason": "Unknown applicant", "admin_contact": org.admin.email}


@pytest.mark.asyncio
async def test_reject_uses_default_reason_and_refuses_active_users(service, org, pending, notifier) -> None:
    await service.reject_user(org.admin, pending.id)
    assert notifier.sent[0].data["reason"] == "No specific reason provided"

    with pytest.raises(ValidationError):
        await service.reject_user(org.admin, org.x.id)


@pytest.mark.asyncio
async def test_rejection_survives_email_failure(db, org, pending) -> None:
    service = UserService(db, FakeNotifier(fail=True))

    removed = await service.reject_user(org.admin, pending.id)

    assert removed.id == pending.id
    with pytest.raises(NotFoundError):
        await service.get_user(pending.id)


@pytest.mark.asyncio
async def test_rejection_email_is_sent_after_the_delete_commits(
    db, session_factory, org, pending
) -> None:
    still_stored: list[bool] = []

    class CheckingNotifier(FakeNotifier):
        async def send_rejection_email(self, user, reason, admin_contact):
            async with session_factory() as other:
                still_stored.append(await other.get(User, user.id) is not None)
            return self._record("rejection", user.email, reason=reason)

    notifier = CheckingNotifier()
    await UserService(db, notifier).reject_user(org.admin, pending.id)

    assert still_stored == [False]
    assert [m.to for m in notifier.sent] == [pending.email]


@pytest.mark.asyncio
async def test_super_admin_cannot_delete_another_super_admin(service, org, make_user) -> None:
    other_admin = await make_user("Root", UserRole.SUPER_ADMIN)

    with pytest.raises(ForbiddenError):
        await service.delete_user(org.admin, other_admin.id)
    with pytest.raises(ForbiddenError):
        await service.delete_user(org.admin, org.admin.id)


@pytest.mark.asyncio
async def test_user_referenced_by_tasks_cannot_be_deleted(service, org, make_task) -> None:
    await make_task(org.x, org.s1)

    with pytest.raises(ForbiddenError) as exc:
        await service.delete_user(org.admin, org.s1.id)
    assert "1 task" in exc.value.reason

    await service.delete_user(org.admin, org.y.id)
    with pytest.raises(NotFoundError):
        await service.get_user(org.y.id)


@pytest.mark.asyncio
async def test_self_role_change_is_forbidden(service, org) -> None:
    with pytest.raises(ForbiddenError):
        await service.change_user_role(org.admin, org.admin.id, "manager")


@pytest.mark.asyncio
async def test_change_role(service, org) -> None:
    updated = await service.change_user_role(org.admin, org.s1.id, "manager")
    assert updated.role == "manager"

    with pytest.raises(ValidationError):
        await service.change_user_role(org.admin, org.s1.id, "pending")
    with pytest.raises(NotFoundError):
        await service.change_user_role(org.admin, uuid4(), "member")


@pytest.mark.asyncio
async def test_pending_users_keep_their_role_until_approved(service, org, pending) -> None:
    with pytest.raises(ValidationError) as exc:
        await service.change_user_role(org.admin, pending.id, "manager")
    assert [e.field for e in exc.value.errors] == ["role"]

    # Still reachable by the approval workflow
    [listed] = await service.list_pending_users(org.admin)
    assert listed.role == "pending"
    result = await service.approve_user(org.admin, pending.id, "manager")
    assert result.user.role == "manager"


@pytest.mark.asyncio
async def test_suspend_and_reactivate(service, org, pending) -> None:
    suspended = await service.set_user_status(org.admin, org.x.id, "suspended")
    assert suspended.status == "suspended"
    assert (await service.set_user_status(org.admin, org.x.id, "active")).status == "active"

    with pytest.raises(ValidationError):
        await service.set_user_status(org.admin, pending.id, "active")
    with pytest.raises(ValidationError):
        await service.set_user_status(org.admin, org.x.id, "pending_approval")
    with pytest.raises(ForbiddenError):
        await service.set_user_status(org.admin, org.admin.id, "suspended")


@pytest.mark.asyncio
async def test_update_user_moves_member_between_teams(service, org) -> None:
    moved = await service.update_user(
        org.admin, org.x.id, {"supervisor_id": org.s2.id, "manager_id": org.m2.id}
    )
    assert (moved.supervisor.id, moved.manager.id) == (org.s2.id, org.m2.id)

    with pytest.raises(ValidationError) as exc:
        await service.update_user(org.admin, org.x.id, {"supervisor_id": None})
    assert [e.field for e in exc.value.errors] == ["supervisor_id"]


@pytest.mark.asyncio
async def test_update_user_email_must_be_unique(service, org) -> None:
    with pytest.raises(ConflictError):
        await service.update_user(org.admin, org.x.id, {"email": org.y.email.upper()})

    updated = await service.update_user(org.admin, org.x.id, {"email": "X.New@Example.com"})
    assert updated.email == "x.new@example.com"


@pytest.mark.asyncio
async def test_update_user_reports_field_errors_before_email_conflicts(service, org) -> None:
    with pytest.raises(ValidationError) as exc:
        await service.update_user(
            org.admin, org.x.id, {"name": " ", "email": org.y.email, "supervisor_id": None}
        )

    assert {e.field for e in exc.value.errors} == {"name", "supervisor_id"}


@pytest.mark.asyncio
async def test_listing(service, org, pending) -> None:
    assert len(await service.list_users(org.admin)) == 9
    assert [u.id for u in await service.list_pending_users(org.admin)] == [pending.id]
    assert pending.id not in {u.id for u in await service.list_active_users()}
    assert {u.id for u in await service.list_users_by_role("manager")} == {org.m1.id, org.m2.id}
    assert {u.id for u in await service.team_members(org.s1.id)} == {org.x.id}

    with pytest.raises(ForbiddenError):
        await service.list_users(org.m1)
    with pytest.raises(ValidationError):
        await service.list_users_by_role("pending")
