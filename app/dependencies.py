"""
FastAPI dependencies for authentication, authorization and service wiring.

Dependencies are reusable functions that FastAPI injects into route handlers.
They form a dependency chain that enforces both authentication and
role-based access control:

  get_current_user (JWT -> User)
      ├── require_user   (USER or ADMIN role)  — /user/cards/*
      └── require_admin  (ADMIN role)          — /admin/*

Roles are checked against the user's persisted roles, so a role change or
a disable takes effect on the very next request, not when the token expires.
Ownership of individual cards is checked inside the services
(find_by_id_and_username), not here.

Services are built per request around the request's database session
(get_db is cached per request, so every dependency shares one transaction).
The CardCodec is created once per process by get_card_codec().
"""

from functools import lru_cache

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.exceptions import AuthenticationFailedError, InsufficientPrivilegesError
from app.models.user import RoleName, User
from app.repositories.block_request_repo import BlockRequestRepository
from app.repositories.card_repo import CardRepository
from app.repositories.refresh_token_repo import RefreshTokenRepository
from app.repositories.user_repo import RoleRepository, UserRepository
from app.security import CardCodec, decode_access_token
from app.services.auth_service import AuthService
from app.services.block_request_service import BlockRequestService
from app.services.card_service import CardService
from app.services.session_store import SessionStore
from app.services.user_service import UserService


# The tokenUrl is used by Swagger UI's "Authorize" button
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


# ---------------------------------------------------------------------------
# Shared components
# ---------------------------------------------------------------------------

@lru_cache
def get_card_codec() -> CardCodec:
    """Process-wide codec built from the configured key and IV."""
    return CardCodec.from_base64(settings.CARD_ENCRYPTION_KEY, settings.CARD_ENCRYPTION_IV)


def get_session_store(db: AsyncSession = Depends(get_db)) -> SessionStore:
    return SessionStore(
        tokens=RefreshTokenRepository(db),
        users=UserRepository(db),
        refresh_ttl=settings.refresh_token_ttl,
        max_sessions_per_user=settings.MAX_SESSIONS_PER_USER,
    )


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
) -> AuthService:
    return AuthService(users=UserRepository(db), sessions=sessions)


def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(
        users=UserRepository(db),
        roles=RoleRepository(db),
        cards=CardRepository(db),
        block_requests=BlockRequestRepository(db),
        tokens=RefreshTokenRepository(db),
    )


def get_card_service(
    db: AsyncSession = Depends(get_db),
    codec: CardCodec = Depends(get_card_codec),
) -> CardService:
    return CardService(
        cards=CardRepository(db),
        users=UserRepository(db),
        block_requests=BlockRequestRepository(db),
        codec=codec,
        timeout_seconds=settings.TRANSACTION_TIMEOUT_SECONDS,
    )


def get_block_request_service(
    db: AsyncSession = Depends(get_db),
    codec: CardCodec = Depends(get_card_codec),
) -> BlockRequestService:
    return BlockRequestService(
        block_requests=BlockRequestRepository(db),
        cards=CardRepository(db),
        users=UserRepository(db),
        codec=codec,
        timeout_seconds=settings.TRANSACTION_TIMEOUT_SECONDS,
    )


# ---------------------------------------------------------------------------
# Authentication / authorization
# ---------------------------------------------------------------------------

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Extract and validate the JWT, then return the corresponding User.

    Raises:
        AuthenticationFailedError (401): The token is invalid or expired,
            or the user no longer exists or is disabled.
    """
    try:
        payload = decode_access_token(token)
    except JWTError:
        raise AuthenticationFailedError("Invalid or expired access token")

    username: str | None = payload.get("sub")
    if not username:
        raise AuthenticationFailedError("Invalid or expired access token")

    user = await UserRepository(db).find_by_username(username)
    if user is None or not user.enabled:
        raise AuthenticationFailedError("User account is missing or disabled")

    return user


async def require_user(user: User = Depends(get_current_user)) -> User:
    """Card-holder endpoints: any authenticated user with USER or ADMIN role."""
    if not (user.has_role(RoleName.USER.value) or user.has_role(RoleName.ADMIN.value)):
        raise InsufficientPrivilegesError()
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Administrative endpoints (/admin/*). Non-admins receive 403."""
    if not user.has_role(RoleName.ADMIN.value):
        raise InsufficientPrivilegesError("Admin access required")
    return user
