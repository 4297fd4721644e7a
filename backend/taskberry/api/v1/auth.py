"""Authentication endpoints: registration, login and password management."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr

from taskberry.config import get_settings
from taskberry.db.session import DBSession
from taskberry.exceptions import ForbiddenError, UnauthenticatedError
from taskberry.models.user import User, UserStatus
from taskberry.services.auth import AuthService
from taskberry.services.email import Notifier, get_notifier
from taskberry.services.security import decode_access_token
from taskberry.services.users import UserService

router = APIRouter()
logger = structlog.get_logger()
settings = get_settings()
security = HTTPBearer(auto_error=False)


class UserSummary(BaseModel):
    """Compact user reference embedded in other responses."""

    id: UUID
    name: str
    email: str
    role: str

    class Config:
        from_attributes = True


class UserResponse(BaseModel):
    """User information response."""

    id: UUID
    name: str
    email: str
    role: str
    status: str
    avatar_url: str | None
    supervisor_id: UUID | None
    manager_id: UUID | None
    approved_at: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class UserDetailResponse(UserResponse):
    """User with hierarchy links expanded. Only built from users loaded with links."""

    supervisor: UserSummary | None = None
    manager: UserSummary | None = None
    approved_by: UserSummary | None = None


class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str


class RegisterResponse(BaseModel):
    message: str
    user: UserResponse


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    password: str


class MessageResponse(BaseModel):
    message: str


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: DBSession,
) -> User:
    """Get the current authenticated user from JWT token."""
    if not credentials:
        raise UnauthenticatedError("Not authenticated")

    user_id = decode_access_token(credentials.credentials)
    user = await db.get(User, user_id)
    if user is None:
        raise UnauthenticatedError("User not found")

    if user.status == UserStatus.SUSPENDED.value:
        raise ForbiddenError("Your account has been suspended")

    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user


# Type alias for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]


def get_auth_service(
    db: DBSession,
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> AuthService:
    return AuthService(db, notifier)


Auth = Annotated[AuthService, Depends(get_auth_service)]


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, auth: Auth) -> RegisterResponse:
    """Create an account. It stays pending until a super admin approves it."""
    user = await auth.register(request.name, request.email, request.password)
    return RegisterResponse(
        message="Registration successful. Your account is pending approval.",
        user=UserResponse.model_validate(user),
    )


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, auth: Auth) -> TokenResponse:
    """Exchange email and password for an access token."""
    token, user = await auth.login(request.email, request.password)
    return TokenResponse(
        access_token=token,
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=UserDetailResponse)
async def get_current_user_info(current_user: CurrentUser, db: DBSession) -> User:
    """Get current user information."""
    return await UserService(db).get_user(current_user.id)


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    request: ChangePasswordRequest,
    current_user: CurrentUser,
    auth: Auth,
) -> MessageResponse:
    await auth.change_password(current_user, request.current_password, request.new_password)
    return MessageResponse(message="Password changed successfully")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(request: ForgotPasswordRequest, auth: Auth) -> MessageResponse:
    """Email a reset link. Responds the same whether or not the account exists."""
    return MessageResponse(message=await auth.forgot_password(request.email))


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(request: ResetPasswordRequest, auth: Auth) -> MessageResponse:
    await auth.reset_password(request.token, request.password)
    return MessageResponse(message="Password has been reset successfully")
