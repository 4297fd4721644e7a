# tests/test_auth_service.py

from __future__ import annotations

import pytest
from sqlalchemy import update

from taskberry.exceptions import (
    ConflictError,
    ForbiddenError,
    UnauthenticatedError,
    ValidationError,
)
from taskberry.models.task import utcnow
from taskberry.models.user import User, UserRole, UserStatus
from taskberry.services.auth import RESET_REQUESTED, AuthService
from taskberry.services.security import decode_access_token

from .conftest import PASSWORD
from .fakes import FakeNotifier


@pytest.fixture()
def auth(db, notifier) -> AuthService:
    return AuthService(db, notifier)


@pytest.mark.asyncio
async def test_register_creates_pending_account(auth) -> None:
    user = await auth.register("  Dana  ", "Dana@Example.COM", "s3cret!")

    assert (user.name, user.email) == ("Dana", "dana@example.com")
    assert (user.role, user.status) == ("pending", "pending_approval")
    assert user.password_hash != "s3cret!"


@pytest.mark.asyncio
async def test_register_rejects_duplicates_case_insensitively(auth) -> None:
    await auth.register("Dana", "dana@example.com", "s3cret!")

    with pytest.raises(ConflictError):
        await auth.register("Other Dana", "DANA@example.com", "s3cret!")


@pytest.mark.asyncio
async def test_register_validates_all_fields(auth) -> None:
    with pytest.raises(ValidationError) as exc:
        await auth.register("", "", "123")

    assert {e.field for e in exc.value.errors} == {"name", "email", "password"}


@pytest.mark.asyncio
async def test_overlong_passwords_are_a_field_error(auth, org) -> None:
    with pytest.raises(ValidationError) as exc:
        await auth.register("Long", "long@example.com", "x" * 100)
    assert [e.field for e in exc.value.errors] == ["password"]

    # Counted in bytes, not characters
    with pytest.raises(ValidationError) as exc:
        await auth.change_password(org.x, PASSWORD, "é" * 40)
    assert [e.field for e in exc.value.errors] == ["new_password"]

    await auth.change_password(org.x, PASSWORD, "y" * 72)
    await auth.login(org.x.email, "y" * 72)


@pytest.mark.asyncio
async def test_login_issues_token(auth, org) -> None:
    token, user = await auth.login(org.x.email.upper(), PASSWORD)

    assert user.id == org.x.id
    assert decode_access_token(token) == org.x.id


@pytest.mark.asyncio
async def test_login_failures_look_the_same(auth, org) -> None:
    with pytest.raises(UnauthenticatedError) as wrong_password:
        await auth.login(org.x.email, "not-it")
    with pytest.raises(UnauthenticatedError) as unknown_email:
        await auth.login("nobody@example.com", PASSWORD)

    assert wrong_password.value.message == unknown_email.value.message


@pytest.mark.asyncio
async def test_suspended_user_cannot_log_in(auth, make_user) -> None:
    user = await make_user("Sam", UserRole.MEMBER, UserStatus.SUSPENDED)

    with pytest.raises(ForbiddenError):
        await auth.login(user.email, PASSWORD)


@pytest.mark.asyncio
async def test_change_password(auth, org) -> None:
    with pytest.raises(ValidationError) as exc:
        await auth.change_password(org.x, "wrong", "brand-new")
    assert exc.value.errors[0].field == "current_password"

    await auth.change_password(org.x, PASSWORD, "brand-new")
    await auth.login(org.x.email, "brand-new")


@pytest.mark.asyncio
async def test_forgot_password_response_does_not_reveal_accounts(auth, org, notifier) -> None:
    assert await auth.forgot_password("nobody@example.com") == RESET_REQUESTED
    assert notifier.sent == []

    assert await auth.forgot_password(org.x.email) == RESET_REQUESTED
    [email] = notifier.of_kind("password_reset")
    assert email.to == org.x.email
    # Only the hash is stored
    assert org.x.reset_password_token_hash != email.data["token"]


@pytest.mark.asyncio
async def test_forgot_password_survives_email_failure(db, org) -> None:
    auth = AuthService(db, FakeNotifier(fail=True))

    assert await auth.forgot_password(org.x.email) == RESET_REQUESTED


@pytest.mark.asyncio
async def test_reset_password_with_emailed_token(auth, org, notifier) -> None:
    await auth.forgot_password(org.x.email)
    token = notifier.of_kind("password_reset")[0].data["token"]

    await auth.reset_password(token, "after-reset")
    await auth.login(org.x.email, "after-reset")

    # Tokens are single use
    with pytest.raises(ValidationError):
        await auth.reset_password(token, "again-and-again")


@pytest.mark.asyncio
async def test_expired_reset_token_is_rejected(auth, db, org, notifier) -> None:
    await auth.forgot_password(org.x.email)
    token = notifier.of_kind("password_reset")[0].data["token"]
    await db.execute(
        update(User).where(User.id == org.x.id).values(reset_password_expires=utcnow())
    )
    await db.commit()

    with pytest.raises(ValidationError):
        await auth.reset_password(token, "after-reset")
