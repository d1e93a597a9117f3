"""
Refresh token repository.

"Active" means revoked = false AND expires_at > now. Every time-dependent
query takes `now` as an argument so a single request evaluates all its
checks against the same instant.
"""

from datetime import datetime

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import joinedload

from app.models.refresh_token import RefreshToken
from app.repositories.base import BaseRepository


class RefreshTokenRepository(BaseRepository[RefreshToken]):
    model = RefreshToken

    async def find_by_token_hash_and_not_revoked(self, token_hash: str) -> RefreshToken | None:
        result = await self.execute(
            select(RefreshToken)
            .options(joinedload(RefreshToken.user))
            .where(RefreshToken.token_hash == token_hash, RefreshToken.revoked.is_(False))
        )
        return result.scalar_one_or_none()

    async def count_active_by_user(self, user_id: int, now: datetime) -> int:
        result = await self.execute(
            select(func.count(RefreshToken.id)).where(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked.is_(False),
                RefreshToken.expires_at > now,
            )
        )
        return result.scalar_one()

    async def find_active_by_user(self, user_id: int, now: datetime) -> list[RefreshToken]:
        """Active sessions, newest first."""
        result = await self.execute(
            select(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked.is_(False),
                RefreshToken.expires_at > now,
            )
            .order_by(RefreshToken.created_at.desc(), RefreshToken.id.desc())
        )
        return list(result.scalars().all())

    async def revoke_by_token_hash(self, token_hash: str) -> int:
        result = await self.execute(
            update(RefreshToken)
            .where(RefreshToken.token_hash == token_hash, RefreshToken.revoked.is_(False))
            .values(revoked=True)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def revoke_all_by_user(self, user_id: int) -> int:
        result = await self.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
            .values(revoked=True)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def count_expired_or_revoked(self, now: datetime) -> int:
        result = await self.execute(
            select(func.count(RefreshToken.id)).where(
                or_(RefreshToken.revoked.is_(True), RefreshToken.expires_at < now)
            )
        )
        return result.scalar_one()

    async def delete_expired_and_revoked(self, now: datetime) -> int:
        """Delete rows that are both revoked and past expiry. Returns the row count."""
        result = await self.execute(
            delete(RefreshToken).where(
                RefreshToken.revoked.is_(True),
                RefreshToken.expires_at < now,
            )
        )
        return result.rowcount

    async def delete_by_user(self, user_id: int) -> None:
        await self.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
