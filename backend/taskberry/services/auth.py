"""Account service: registration, login and password management."""

from datetime import timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskberry.config import get_settings
from taskberry.exceptions import (
    ConflictError,
    FieldError,
    ForbiddenError,
    UnauthenticatedError,
    ValidationError,
)
from taskberry.models.task import utcnow
from taskberry.models.user import User, UserRole, UserStatus
from taskberry.services.email import Notifier
from taskberry.services.security import (
    MAX_PASSWORD_BYTES,
    create_access_token,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    verify_password,
)

logger = structlog.get_logger()
settings = get_settings()

INVALID_CREDENTIALS = "Invalid credentials"
RESET_REQUESTED = "If an account with that email exists, a reset link has been sent."


def _password_errors(password: str | None, field: str = "password") -> list[FieldError]:
    if not password or len(password) < settings.password_min_length:
        return [
            FieldError(
                field,
                f"Password must be at least {settings.password_min_length} characters long",
            )
        ]
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return [FieldError(field, f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")]
    return []


class AuthService:
    """Credential handling for the auth endpoints."""

    def __init__(self, db: AsyncSession, notifier: Notifier | None = None):
        self.db = db
        self.notifier = notifier

    async def _by_email(self, email: str) -> User | None:
        result = await self.db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    async def register(self, name: str, email: str, password: str) -> User:
        """Create an account awaiting super admin approval."""
        errors: list[FieldError] = []
        if not (name or "").strip():
            errors.append(FieldError("name", "Name is required"))
        if not (email or "").strip():
            errors.append(FieldError("email", "Email is required"))
        errors.extend(_password_errors(password))
        if errors:
            raise ValidationError(errors)

        email = email.strip().lower()
        if await self._by_email(email) is not None:
            raise ConflictError("User already exists with this email")

        user = User(
            name=name.strip(),
            email=email,
            password_hash=hash_password(password),
            role=UserRole.PENDING.value,
            status=UserStatus.PENDING_APPROVAL.value,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent registration for the same address
            await self.db.rollback()
            raise ConflictError("User already exists with this email") from e
        await self.db.refresh(user)

        logger.info("user_registered", user_id=str(user.id), email=email)
        return user

    async def login(self, email: str, password: str) -> tuple[str, User]:
        """Return an access token and the user for valid credentials."""
        user = await self._by_email(email or "")
        if user is None or not verify_password(password or "", user.password_hash):
            logger.info("login_failed", email=(email or "").strip().lower())
            raise UnauthenticatedError(INVALID_CREDENTIALS)

        if user.status == UserStatus.SUSPENDED.value:
            logger.info("login_suspended", user_id=str(user.id))
            raise ForbiddenError("Your account has been suspended")

        logger.info("user_logged_in", user_id=str(user.id), role=user.role)
        return create_access_token(user.id), user

    async def change_password(self, user: User, current_password: str, new_password: str) -> None:
        errors = _password_errors(new_password, field="new_password")
        if not verify_password(current_password or "", user.password_hash):
            errors.insert(0, FieldError("current_password", "Current password is incorrect"))
        if errors:
            raise ValidationError(errors, message=errors[0].message)

        user.password_hash = hash_password(new_password)
        await self.db.commit()
        logger.info("password_changed", user_id=str(user.id))

    async def forgot_password(self, email: str) -> str:
        """Issue a reset token when the account exists.

        The returned message is the same either way so the endpoint does not
        reveal which addresses are registered.
        """
        user = await self._by_email(email or "")
        if user is None:
            logger.info("password_reset_unknown_email")
            return RESET_REQUESTED

        token, token_hash = generate_reset_token()
        user.reset_password_token_hash = token_hash
        user.reset_password_expires = utcnow() + timedelta(
            minutes=settings.password_reset_expire_minutes
        )
        await self.db.commit()
        logger.info("password_reset_requested", user_id=str(user.id))

        if self.notifier is not None:
            try:
                await self.notifier.send_password_reset_email(user.email, token)
            except Exception as e:
                logger.warning("password_reset_email_failed", user_id=str(user.id), error=str(e))

        return RESET_REQUESTED

    async def reset_password(self, token: str, new_password: str) -> None:
        errors = _password_errors(new_password)
        if errors:
            raise ValidationError(errors)

        result = await self.db.execute(
            select(User).where(
                User.reset_password_token_hash == hash_reset_token(token or ""),
                User.reset_password_expires > utcnow(),
            )
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise ValidationError.single("token", "Invalid or expired reset token")

        user.password_hash = hash_password(new_password)
        user.reset_password_token_hash = None
        user.reset_password_expires = None
        await self.db.commit()
        logger.info("password_reset_completed", user_id=str(user.id))
