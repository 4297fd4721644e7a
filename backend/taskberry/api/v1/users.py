"""User management endpoints."""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field

from taskberry.api.v1.auth import CurrentUser, MessageResponse, UserDetailResponse
from taskberry.db.session import DBSession
from taskberry.models.user import User
from taskberry.services.email import Notifier, get_notifier
from taskberry.services.users import UserService

router = APIRouter()
logger = structlog.get_logger()


class ApproveUserRequest(BaseModel):
    """Approve a pending user into a role."""

    role: str | None = None
    supervisor_id: UUID | None = None
    manager_id: UUID | None = None


class ApproveUserResponse(BaseModel):
    message: str
    user: UserDetailResponse
    email_sent: bool


class RejectUserRequest(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class RoleUpdate(BaseModel):
    role: str


class StatusUpdate(BaseModel):
    status: str


class UserUpdate(BaseModel):
    """Profile and hierarchy edits. Omitted fields are left alone."""

    name: str | None = Field(None, max_length=255)
    email: EmailStr | None = None
    avatar_url: str | None = Field(None, max_length=500)
    supervisor_id: UUID | None = None
    manager_id: UUID | None = None


def get_user_service(
    db: DBSession,
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> UserService:
    return UserService(db, notifier)


Users = Annotated[UserService, Depends(get_user_service)]


@router.get("", response_model=list[UserDetailResponse])
async def list_users(current_user: CurrentUser, users: Users) -> list[User]:
    """List every user. Super admin only."""
    return await users.list_users(current_user)


@router.get("/pending", response_model=list[UserDetailResponse])
async def list_pending_users(current_user: CurrentUser, users: Users) -> list[User]:
    """List users awaiting approval. Super admin only."""
    return await users.list_pending_users(current_user)


@router.get("/active", response_model=list[UserDetailResponse])
async def list_active_users(current_user: CurrentUser, users: Users) -> list[User]:
    return await users.list_active_users()


@router.get("/role/{role}", response_model=list[UserDetailResponse])
async def list_users_by_role(role: str, current_user: CurrentUser, users: Users) -> list[User]:
    """Active users holding ``role``, e.g. to populate supervisor/manager pickers."""
    return await users.list_users_by_role(role)


@router.get("/{user_id}", response_model=UserDetailResponse)
async def get_user(user_id: UUID, current_user: CurrentUser, users: Users) -> User:
    return await users.get_user(user_id)


@router.get("/{user_id}/team", response_model=list[UserDetailResponse])
async def get_team_members(user_id: UUID, current_user: CurrentUser, users: Users) -> list[User]:
    """Users reporting to a manager or supervisor."""
    return await users.team_members(user_id)


@router.put("/{user_id}/approve", response_model=ApproveUserResponse)
async def approve_user(
    user_id: UUID,
    request: ApproveUserRequest,
    current_user: CurrentUser,
    users: Users,
) -> ApproveUserResponse:
    result = await users.approve_user(
        current_user,
        user_id,
        request.role,
        supervisor_id=request.supervisor_id,
        manager_id=request.manager_id,
    )
    message = "User approved successfully"
    if not result.email_sent:
        message += " (notification email was not sent)"
    return ApproveUserResponse(
        message=message,
        user=UserDetailResponse.model_validate(result.user),
        email_sent=result.email_sent,
    )


@router.delete("/{user_id}/reject", response_model=MessageResponse)
async def reject_user(
    user_id: UUID,
    current_user: CurrentUser,
    users: Users,
    request: RejectUserRequest | None = None,
) -> MessageResponse:
    """Reject a pending registration. The account is removed."""
    reason = request.reason if request else None
    await users.reject_user(current_user, user_id, reason)
    return MessageResponse(message="User rejected and removed")


@router.put("/{user_id}/role", response_model=UserDetailResponse)
async def change_user_role(
    user_id: UUID,
    request: RoleUpdate,
    current_user: CurrentUser,
    users: Users,
) -> User:
    return await users.change_user_role(current_user, user_id, request.role)


@router.put("/{user_id}/status", response_model=UserDetailResponse)
async def set_user_status(
    user_id: UUID,
    request: StatusUpdate,
    current_user: CurrentUser,
    users: Users,
) -> User:
    """Suspend or reactivate an account."""
    return await users.set_user_status(current_user, user_id, request.status)


@router.put("/{user_id}", response_model=UserDetailResponse)
async def update_user(
    user_id: UUID,
    request: UserUpdate,
    current_user: CurrentUser,
    users: Users,
) -> User:
    return await users.update_user(current_user, user_id, request.model_dump(exclude_unset=True))


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: UUID, current_user: CurrentUser, users: Users) -> None:
    """Permanently delete a user that no task references."""
    await users.delete_user(current_user, user_id)
