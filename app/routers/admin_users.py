"""
Admin user router — user accounts and their roles.

Endpoints (ADMIN role required):
  GET    /admin/users                        — Paged user list
  POST   /admin/users                        — Create a user
  GET    /admin/users/id/{user_id}           — User by id
  GET    /admin/users/{username}             — User by username
  PUT    /admin/users/{username}/roles       — Replace the role set
  PATCH  /admin/users/{username}/toggle-status — Enable/disable
  DELETE /admin/users/{username}             — Delete with cards, requests, sessions
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import get_user_service, require_admin
from app.models.user import User
from app.schemas.common import MessageResponse, PageResponse
from app.schemas.user import CreateUserRequest, UpdateRolesRequest, UserResponse
from app.services.user_service import UserService

router = APIRouter()


@router.get(
    "",
    response_model=PageResponse[UserResponse],
    summary="List users",
)
async def list_users(
    page: int = Query(0, ge=0),
    size: int = Query(10, ge=1, le=100),
    sort_by: str = Query("id", alias="sortBy"),
    sort_direction: str = Query("asc", alias="sortDirection"),
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    """sortBy: id, username, enabled or createdAt."""
    result = await users.list_users(page, size, sort_by, sort_direction)
    return PageResponse[UserResponse].build(result, UserResponse)


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
)
async def create_user(
    request: CreateUserRequest,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    user = await users.create_user(request.username, request.password, request.enabled)
    return UserResponse.model_validate(user)


@router.get(
    "/id/{user_id}",
    response_model=UserResponse,
    summary="Get a user by id",
)
async def get_user_by_id(
    user_id: int,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    return UserResponse.model_validate(await users.get_by_id(user_id))


@router.get(
    "/{username}",
    response_model=UserResponse,
    summary="Get a user by username",
)
async def get_user(
    username: str,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    return UserResponse.model_validate(await users.get_by_username(username))


@router.put(
    "/{username}/roles",
    response_model=UserResponse,
    summary="Replace a user's roles",
)
async def update_roles(
    username: str,
    request: UpdateRolesRequest,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    """Unknown role names are rejected with 404 and nothing changes."""
    return UserResponse.model_validate(await users.update_roles(username, request.roles))


@router.patch(
    "/{username}/toggle-status",
    response_model=UserResponse,
    summary="Enable or disable a user",
)
async def toggle_status(
    username: str,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    """Disabling a user also revokes all of their refresh tokens."""
    return UserResponse.model_validate(await users.toggle_status(username))


@router.delete(
    "/{username}",
    response_model=MessageResponse,
    summary="Delete a user",
)
async def delete_user(
    username: str,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    await users.delete_user(username)
    return MessageResponse(
        timestamp=datetime.now(timezone.utc),
        status=status.HTTP_200_OK,
        message="User deleted successfully",
    )
