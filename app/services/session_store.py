"""
Session store — refresh-token issuance, lookup, revocation and cleanup.

Issuance flow (issue):
  1. Resolve the user by username (UserNotFoundError if absent)
  2. Lock the user row, then enforce the session cap: if the user already
     has MAX_SESSIONS_PER_USER active sessions, revoke the oldest ones
     (ascending created_at) so that after the new token is stored the user
     has exactly the cap
  3. Generate a UUIDv4 raw token and store only its SHA-256 hex digest
  4. Return the raw token; it is never persisted or logged

Verification (verify):
  Lookup by hash among non-revoked rows (RefreshTokenNotFoundError if none).
  An expired row is revoked on the spot and RefreshTokenExpiredError is
  raised. get_db() commits on that error so the revocation sticks and the
  next attempt reports "not found".
"""

import logging
from datetime import datetime, timedelta, timezone

from app.exceptions import (
    RefreshTokenExpiredError,
    RefreshTokenNotFoundError,
    UserNotFoundError,
)
from app.models.refresh_token import RefreshToken
from app.models.user import User
from app.repositories.refresh_token_repo import RefreshTokenRepository
from app.repositories.user_repo import UserRepository
from app.security import generate_refresh_token, hash_token

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class SessionStore:
    def __init__(
        self,
        tokens: RefreshTokenRepository,
        users: UserRepository,
        refresh_ttl: timedelta,
        max_sessions_per_user: int,
    ):
        self.tokens = tokens
        self.users = users
        self.refresh_ttl = refresh_ttl
        self.max_sessions_per_user = max_sessions_per_user

    async def issue(self, username: str) -> str:
        """Create a new session for the user and return the raw refresh token."""
        user = await self.users.find_by_username(username)
        if user is None:
            raise UserNotFoundError(username)

        # Concurrent logins of one user queue here before counting sessions
        await self.users.lock_by_id(user.id)
        now = datetime.now(timezone.utc)
        await self._enforce_session_cap(user, now)

        raw_token = generate_refresh_token()
        await self.tokens.save(
            RefreshToken(
                user_id=user.id,
                token_hash=hash_token(raw_token),
                expires_at=now + self.refresh_ttl,
                created_at=now,
                revoked=False,
            )
        )
        return raw_token

    async def _enforce_session_cap(self, user: User, now: datetime) -> None:
        active = await self.tokens.count_active_by_user(user.id, now)
        if active < self.max_sessions_per_user:
            return

        # Newest first from the repository; revoke from the oldest end
        oldest_first = list(reversed(await self.tokens.find_active_by_user(user.id, now)))
        excess = active - self.max_sessions_per_user + 1
        for token in oldest_first[:excess]:
            token.revoked = True
        await self.tokens.flush()
        logger.info(
            "Session cap reached for %s: revoked %d oldest session(s)",
            user.username, min(excess, len(oldest_first)),
        )

    async def verify(self, raw_token: str) -> RefreshToken:
        """
        Return the active token row (with its user loaded) for a raw token.

        Raises:
            RefreshTokenNotFoundError: Unknown or already revoked token.
            RefreshTokenExpiredError: Token expired; it is revoked first.
        """
        token = await self.tokens.find_by_token_hash_and_not_revoked(hash_token(raw_token))
        if token is None:
            raise RefreshTokenNotFoundError()

        if _as_utc(token.expires_at) < datetime.now(timezone.utc):
            token.revoked = True
            await self.tokens.flush()
            logger.info("Refresh token for %s expired and was revoked", token.user.username)
            raise RefreshTokenExpiredError()

        return token

    async def revoke(self, raw_token: str) -> bool:
        """Revoke one session. Returns False if no active row matched."""
        return await self.tokens.revoke_by_token_hash(hash_token(raw_token)) > 0

    async def revoke_all(self, user_id: int) -> int:
        return await self.tokens.revoke_all_by_user(user_id)

    async def active_count(self, user_id: int) -> int:
        return await self.tokens.count_active_by_user(user_id, datetime.now(timezone.utc))

    async def cleanup(self) -> int:
        """Delete tokens that are revoked and expired. Returns the number removed."""
        now = datetime.now(timezone.utc)
        candidates = await self.tokens.count_expired_or_revoked(now)
        deleted = await self.tokens.delete_expired_and_revoked(now)
        logger.debug(
            "Token cleanup: %d revoked-or-expired row(s), %d deleted", candidates, deleted
        )
        return deleted
