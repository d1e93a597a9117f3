"""
Authentication router — registration, login, refresh and logout.

Endpoints:
  POST /auth/register    — Create a USER account (public)
  POST /auth/login       — Authenticate, get access + refresh tokens (public)
  POST /auth/refresh     — New access token for a refresh token (public)
  POST /auth/logout      — Revoke one refresh token (public)
  POST /auth/logout-all  — Revoke every session of the caller
  GET  /auth/sessions    — Count the caller's active sessions

Security audit notes:
  - Plaintext passwords exist only in memory during request processing;
    they are hashed before any database operation and never logged.
  - Tokens appear only in response bodies, which are not logged.
  - Refresh tokens are stored as SHA-256 digests; a database dump does not
    reveal usable tokens.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status

from app.dependencies import get_auth_service, get_current_user, get_user_service
from app.models.user import User
from app.schemas.auth import (
    LoginRequest,
    LogoutAllResponse,
    LogoutResponse,
    RefreshTokenRequest,
    RegisterRequest,
    SessionsResponse,
    TokenResponse,
)
from app.schemas.user import UserResponse
from app.services.auth_service import AuthService
from app.services.user_service import UserService

router = APIRouter()


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    request: RegisterRequest,
    users: UserService = Depends(get_user_service),
):
    """
    Register a new card holder.

    - **username**: 3-50 characters, must not be taken (409 otherwise)
    - **password**: Minimum 8 characters

    The account is enabled and holds the USER role. Log in afterwards to
    obtain tokens.
    """
    user = await users.register(request.username, request.password)
    return UserResponse.model_validate(user)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and get tokens",
)
async def login(
    request: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """
    Authenticate with username and password.

    Returns a short-lived access token for the Authorization header:

        Authorization: Bearer <accessToken>

    and a refresh token for POST /auth/refresh. Each login opens a new
    session; beyond MAX_SESSIONS_PER_USER the oldest session is revoked.
    """
    pair = await auth.login(request.username, request.password)
    return TokenResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Exchange a refresh token for a new access token",
)
async def refresh(
    request: RefreshTokenRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """
    The refresh token itself is returned unchanged.

    - Unknown or revoked token: 404
    - Expired token: 401 (and the token is revoked)
    """
    pair = await auth.refresh(request.refresh_token)
    return TokenResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


@router.post(
    "/logout",
    response_model=LogoutResponse,
    summary="Revoke a refresh token",
)
async def logout(
    request: RefreshTokenRequest,
    auth: AuthService = Depends(get_auth_service),
):
    await auth.logout(request.refresh_token)
    return LogoutResponse(
        message="Logged out successfully",
        timestamp=datetime.now(timezone.utc),
    )


@router.post(
    "/logout-all",
    response_model=LogoutAllResponse,
    summary="Revoke all sessions of the current user",
)
async def logout_all(
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    await auth.logout_all(user)
    return LogoutAllResponse(
        message="All sessions logged out successfully",
        username=user.username,
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/sessions",
    response_model=SessionsResponse,
    summary="Count active sessions of the current user",
)
async def sessions(
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    return SessionsResponse(
        active_sessions_count=await auth.active_sessions(user),
        username=user.username,
        timestamp=datetime.now(timezone.utc),
    )
