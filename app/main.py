"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Lifespan manager — logging, schema creation, role seeding, card codec
     check, and the token cleanup scheduler
  2. CORS middleware — allows frontend origins to make cross-origin requests
  3. Exception handlers — maps domain errors to HTTP responses
  4. Router registration — mounts all API endpoint groups

Running locally:
    uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import AsyncSessionLocal, Base, engine
from app.dependencies import get_card_codec
from app.exceptions import register_exception_handlers
from app.logging_config import setup_logging
from app.repositories.block_request_repo import BlockRequestRepository
from app.repositories.card_repo import CardRepository
from app.repositories.refresh_token_repo import RefreshTokenRepository
from app.repositories.user_repo import RoleRepository, UserRepository
from app.routers import admin_cards, admin_users, auth, user_cards
from app.scheduler import CleanupScheduler, TokenCleanupJob
from app.services.user_service import UserService

logger = logging.getLogger(__name__)


async def seed_reference_data() -> None:
    """Make sure the USER/ADMIN roles (and the optional bootstrap admin) exist."""
    async with AsyncSessionLocal() as session:
        users = UserService(
            users=UserRepository(session),
            roles=RoleRepository(session),
            cards=CardRepository(session),
            block_requests=BlockRequestRepository(session),
            tokens=RefreshTokenRepository(session),
        )
        await users.ensure_default_roles()
        await users.ensure_bootstrap_admin()
        await session.commit()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
      Creates all database tables if they don't exist (a development
      convenience; production schemas belong to a migration tool), seeds
      roles, builds the card codec so bad key material fails fast, and
      starts the cleanup scheduler.

    Shutdown:
      Stops the scheduler and disposes of the database engine.
    """
    # --- Startup ---
    setup_logging(settings.LOG_LEVEL)
    get_card_codec()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await seed_reference_data()

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = CleanupScheduler(
            TokenCleanupJob(AsyncSessionLocal),
            interval_ms=settings.JWT_CLEANUP_INTERVAL_MS,
        )
        scheduler.start()
    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)

    yield

    # --- Shutdown ---
    if scheduler is not None:
        scheduler.shutdown()
    await engine.dispose()
    logger.info("%s stopped", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Bank card management API: cards, transfers, block requests and sessions",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(user_cards.router, prefix="/user/cards", tags=["My Cards"])
app.include_router(admin_cards.router, prefix="/admin/cards", tags=["Admin: Cards"])
app.include_router(admin_users.router, prefix="/admin/users", tags=["Admin: Users"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness probe for load balancers and orchestrators."""
    return {"status": "ok", "version": settings.APP_VERSION}
