"""
Authentication service — login, token refresh and logout.

Login flow:
  1. Look up the user by username
  2. Verify the password against the stored Argon2 hash
  3. Reject disabled users
  4. Issue a short-lived access token (JWT with sub + roles claims) and a
     new refresh token through the SessionStore

Security notes:
  - "Unknown user", "wrong password" and "disabled user" all produce the same
    InvalidCredentialsError to prevent user enumeration
  - Refresh reuses the presented refresh token; only the access token is new
  - Passwords and raw tokens are never logged
"""

import logging
from dataclasses import dataclass

from app.exceptions import InvalidCredentialsError
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.security import create_access_token, verify_password
from app.services.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


class AuthService:
    def __init__(self, users: UserRepository, sessions: SessionStore):
        self.users = users
        self.sessions = sessions

    async def login(self, username: str, password: str) -> TokenPair:
        """
        Authenticate a user and open a new session.

        Raises:
            InvalidCredentialsError: Unknown user, wrong password, or disabled.
        """
        user = await self.users.find_by_username(username)
        if user is None or not verify_password(password, user.hashed_password):
            logger.warning("Failed login for %s", username)
            raise InvalidCredentialsError()
        if not user.enabled:
            logger.warning("Login attempt by disabled user %s", username)
            raise InvalidCredentialsError()

        refresh_token = await self.sessions.issue(user.username)
        logger.info("User %s logged in", username)
        return TokenPair(
            access_token=self._access_token_for(user),
            refresh_token=refresh_token,
        )

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange a valid refresh token for a new access token.

        Raises:
            RefreshTokenNotFoundError: Unknown or revoked token.
            RefreshTokenExpiredError: Expired token (now revoked).
        """
        token = await self.sessions.verify(refresh_token)
        return TokenPair(
            access_token=self._access_token_for(token.user),
            refresh_token=refresh_token,
        )

    async def logout(self, refresh_token: str) -> None:
        if not await self.sessions.revoke(refresh_token):
            logger.info("Logout with unknown or already revoked refresh token")

    async def logout_all(self, user: User) -> int:
        revoked = await self.sessions.revoke_all(user.id)
        logger.info("User %s logged out of %d session(s)", user.username, revoked)
        return revoked

    async def active_sessions(self, user: User) -> int:
        return await self.sessions.active_count(user.id)

    @staticmethod
    def _access_token_for(user: User) -> str:
        return create_access_token(user.username, user.role_names)
