"""
Background scheduler for periodic refresh-token cleanup.

Every JWT_CLEANUP_INTERVAL_MS the cleanup job opens its own database
session, deletes refresh tokens that are both revoked and expired, commits,
and logs how many rows went and how long it took. A failing run is logged
with its stack trace and the schedule carries on.

APScheduler settings:
  - in-memory job store, asyncio executor (jobs run on the app's event loop)
  - coalesce=True: a backlog of missed runs collapses into one
  - max_instances=1: a run that would overlap the previous one is skipped;
    skipped and missed runs are logged by the event listener below
"""

import logging
import time

from apscheduler.events import EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED, JobEvent
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.database import run_with_timeout, transaction_scope
from app.repositories.refresh_token_repo import RefreshTokenRepository
from app.repositories.user_repo import UserRepository
from app.services.session_store import SessionStore

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "refresh_token_cleanup"


class TokenCleanupJob:
    """Deletes revoked, expired refresh tokens in a session of its own."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def run(self) -> int | None:
        """Run one cleanup pass. Returns the number of deleted rows, or None on failure."""
        logger.info("Starting refresh token cleanup")
        started = time.perf_counter()
        try:
            async with transaction_scope(self.session_factory) as session:
                store = SessionStore(
                    tokens=RefreshTokenRepository(session),
                    users=UserRepository(session),
                    refresh_ttl=settings.refresh_token_ttl,
                    max_sessions_per_user=settings.MAX_SESSIONS_PER_USER,
                )
                deleted = await run_with_timeout("token cleanup", store.cleanup())
        except Exception:
            logger.error("Refresh token cleanup failed", exc_info=True)
            return None

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("Refresh token cleanup deleted %d token(s) in %.0f ms", deleted, elapsed_ms)
        return deleted


class CleanupScheduler:
    """Owns the APScheduler instance and the token cleanup job."""

    def __init__(self, job: TokenCleanupJob, interval_ms: int):
        self.job = job
        self.interval_ms = interval_ms
        self.scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 60,
            },
            timezone="UTC",
        )
        self.scheduler.add_listener(self._on_skipped, EVENT_JOB_MAX_INSTANCES | EVENT_JOB_MISSED)

    def setup_jobs(self) -> None:
        self.scheduler.add_job(
            self.job.run,
            trigger=IntervalTrigger(seconds=self.interval_ms / 1000),
            id=CLEANUP_JOB_ID,
            name="Refresh Token Cleanup",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def start(self) -> None:
        self.setup_jobs()
        self.scheduler.start()
        logger.info("Token cleanup scheduled every %d ms", self.interval_ms)

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Token cleanup scheduler stopped")

    @staticmethod
    def _on_skipped(event: JobEvent) -> None:
        if event.code == EVENT_JOB_MAX_INSTANCES:
            logger.warning("Skipped run of %s: previous run still in progress", event.job_id)
        else:
            logger.warning("Missed run of %s", event.job_id)
