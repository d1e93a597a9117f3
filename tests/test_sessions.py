"""
Tests for the session store and the token cleanup job.

These tests verify:
  - The per-user session cap revokes the oldest sessions first
  - Revoked tokens never come back; other users' sessions are untouched
  - Cleanup deletes only rows that are both revoked and expired
  - TokenCleanupJob commits its deletions and reports the count
  - The scheduler registers the cleanup job at the configured interval
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select, update

from app.exceptions import RefreshTokenNotFoundError, UserNotFoundError
from app.models.refresh_token import RefreshToken
from app.repositories.refresh_token_repo import RefreshTokenRepository
from app.repositories.user_repo import UserRepository
from app.scheduler import CLEANUP_JOB_ID, CleanupScheduler, TokenCleanupJob
from app.services.session_store import SessionStore
from conftest import bearer, login, register


def make_store(session, max_sessions: int = 5) -> SessionStore:
    return SessionStore(
        tokens=RefreshTokenRepository(session),
        users=UserRepository(session),
        refresh_ttl=timedelta(days=7),
        max_sessions_per_user=max_sessions,
    )


async def count_tokens(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(RefreshToken.id)))).scalar_one()


class TestSessionCap:
    """Login-driven session cap behaviour."""

    async def test_sixth_login_evicts_first(self, client):
        await register(client, "bob")
        logins = [await login(client, "bob") for _ in range(6)]

        sessions = await client.get("/auth/sessions", headers=bearer(logins[-1]))
        assert sessions.json()["activeSessionsCount"] == 5

        oldest = await client.post(
            "/auth/refresh", json={"refreshToken": logins[0]["refreshToken"]}
        )
        assert oldest.status_code == 404

        for tokens in logins[1:]:
            response = await client.post(
                "/auth/refresh", json={"refreshToken": tokens["refreshToken"]}
            )
            assert response.status_code == 200

    async def test_cap_is_per_user(self, client):
        await register(client, "bob")
        await register(client, "carol")
        carol = await login(client, "carol")
        for _ in range(6):
            await login(client, "bob")

        response = await client.post("/auth/refresh", json={"refreshToken": carol["refreshToken"]})
        assert response.status_code == 200

    async def test_store_enforces_smaller_cap(self, client, session_factory):
        await register(client, "bob")

        async with session_factory() as session:
            store = make_store(session, max_sessions=2)
            first = await store.issue("bob")
            second = await store.issue("bob")
            third = await store.issue("bob")
            await session.commit()

            user = await UserRepository(session).find_by_username("bob")
            assert await store.active_count(user.id) == 2
            with pytest.raises(RefreshTokenNotFoundError):
                await store.verify(first)
            assert (await store.verify(second)).user.username == "bob"
            assert (await store.verify(third)).user.username == "bob"

    async def test_issue_for_unknown_user(self, session_factory):
        async with session_factory() as session:
            with pytest.raises(UserNotFoundError):
                await make_store(session).issue("ghost")


class TestCleanup:
    """SessionStore.cleanup and the scheduled job around it."""

    async def _seed(self, client, session_factory):
        """bob gets three tokens: revoked+expired, revoked only, expired only."""
        await register(client, "bob")
        tokens = [await login(client, "bob") for _ in range(4)]
        past = datetime.now(timezone.utc) - timedelta(hours=1)

        async with session_factory() as session:
            rows = (
                await session.execute(select(RefreshToken).order_by(RefreshToken.id))
            ).scalars().all()
            await session.execute(
                update(RefreshToken)
                .where(RefreshToken.id == rows[0].id)
                .values(revoked=True, expires_at=past)
            )
            await session.execute(
                update(RefreshToken).where(RefreshToken.id == rows[1].id).values(revoked=True)
            )
            await session.execute(
                update(RefreshToken).where(RefreshToken.id == rows[2].id).values(expires_at=past)
            )
            await session.commit()
        return tokens

    async def test_cleanup_deletes_only_revoked_and_expired(self, client, session_factory):
        tokens = await self._seed(client, session_factory)

        async with session_factory() as session:
            deleted = await make_store(session).cleanup()
            await session.commit()

        assert deleted == 1
        assert await count_tokens(session_factory) == 3

        live = await client.post("/auth/refresh", json={"refreshToken": tokens[3]["refreshToken"]})
        assert live.status_code == 200

    async def test_cleanup_job_commits(self, client, session_factory):
        await self._seed(client, session_factory)

        deleted = await TokenCleanupJob(session_factory).run()

        assert deleted == 1
        assert await count_tokens(session_factory) == 3

    async def test_cleanup_job_with_nothing_to_do(self, session_factory):
        assert await TokenCleanupJob(session_factory).run() == 0

    async def test_cleanup_job_failure_is_swallowed(self):
        def broken_factory():
            raise RuntimeError("database unavailable")

        assert await TokenCleanupJob(broken_factory).run() is None


class TestCleanupScheduler:

    async def test_job_registered_with_interval(self, session_factory):
        scheduler = CleanupScheduler(TokenCleanupJob(session_factory), interval_ms=3_600_000)
        scheduler.setup_jobs()

        job = scheduler.scheduler.get_job(CLEANUP_JOB_ID)
        assert job is not None
        assert job.trigger.interval == timedelta(hours=1)
        assert job.max_instances == 1

    async def test_shutdown_before_start_is_noop(self, session_factory):
        scheduler = CleanupScheduler(TokenCleanupJob(session_factory), interval_ms=1000)
        scheduler.shutdown()
        assert scheduler.scheduler.running is False
