"""
Test fixtures for the card management API test suite.

This module provides shared fixtures used across all test files:

  - db_engine: Fresh in-memory SQLite database (with seeded roles) per test
  - session_factory: Sessions bound to that engine, for direct DB checks
  - client: Async HTTP test client (unauthenticated)
  - user_headers: Bearer headers for "alice", a registered USER
  - admin_headers: Bearer headers for "admin", promoted to ADMIN in the DB
  - alice_cards: Two cards issued to alice by the admin

Key design decisions:
  - Required settings are put into the environment before the app is
    imported, so no .env file is needed to run the tests.
  - We override FastAPI's get_db dependency to inject our test engine through
    the same transaction_scope() as production, so commit/rollback rules
    (including read-only GETs) match.
  - Users are created through the real /auth/register endpoint. Admins are
    provisioned by adding the ADMIN role directly in the database, the way an
    operator would.
"""

import os

os.environ.setdefault("JWT_ACCESS_SECRET", "test-secret-key-not-for-production")
os.environ.setdefault("CARD_ENCRYPTION_KEY", "MDEyMzQ1Njc4OWFiY2RlZg==")  # "0123456789abcdef"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("MAX_SESSIONS_PER_USER", "5")

from datetime import datetime  # noqa: E402

import pytest_asyncio  # noqa: E402
from fastapi import Request  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402

from app.database import READ_ONLY_METHODS, Base, get_db, transaction_scope  # noqa: E402
from app.main import app  # noqa: E402
from app.models.user import Role, RoleName, User  # noqa: E402


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

CARD_A = "4111111111111111"
CARD_B = "4222222222222222"
NEXT_YEAR = datetime.now().year + 1


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables and the built-in roles."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        session.add_all([Role(role_name=name.value, enabled=True) for name in RoleName])
        await session.commit()
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def client(session_factory):
    """
    Async HTTP test client with the test database injected.

    This overrides the get_db dependency so all requests hit the
    in-memory test database instead of the real one.
    """

    async def override_get_db(request: Request):
        read_only = request.method in READ_ONLY_METHODS
        async with transaction_scope(session_factory, read_only=read_only) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def register(client, username: str, password: str = "SecurePass123!"):
    response = await client.post(
        "/auth/register", json={"username": username, "password": password}
    )
    assert response.status_code == 201, f"Register failed: {response.text}"
    return response.json()


async def login(client, username: str, password: str = "SecurePass123!") -> dict:
    response = await client.post(
        "/auth/login", json={"username": username, "password": password}
    )
    assert response.status_code == 200, f"Login failed: {response.text}"
    return response.json()


def bearer(tokens: dict) -> dict:
    return {"Authorization": f"Bearer {tokens['accessToken']}"}


async def grant_admin(session_factory, username: str) -> None:
    """Add the ADMIN role to a user directly in the database."""
    async with session_factory() as session:
        user = (await session.execute(select(User).where(User.username == username))).scalar_one()
        admin_role = (
            await session.execute(select(Role).where(Role.role_name == RoleName.ADMIN.value))
        ).scalar_one()
        user.roles.append(admin_role)
        await session.commit()


async def create_card(client, admin_headers, username: str, number: str, balance: str = "0.00"):
    response = await client.post(
        "/admin/cards",
        headers=admin_headers,
        json={
            "username": username,
            "cardNumber": number,
            "cardHolderName": username.upper() + " TESTER",
            "expirationMonth": 12,
            "expirationYear": NEXT_YEAR,
            "initialBalance": balance,
        },
    )
    assert response.status_code == 201, f"Card creation failed: {response.text}"
    return response.json()


# ---------------------------------------------------------------------------
# Identities and seed data
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def user_headers(client):
    """Bearer headers for alice, a regular USER."""
    await register(client, "alice")
    return bearer(await login(client, "alice"))


@pytest_asyncio.fixture
async def admin_headers(client, session_factory):
    """
    Bearer headers for an ADMIN user.

    Signs up normally, then the ADMIN role is added directly in the
    database, simulating provisioning by a system operator.
    """
    await register(client, "admin", "AdminPass123!")
    await grant_admin(session_factory, "admin")
    return bearer(await login(client, "admin", "AdminPass123!"))


@pytest_asyncio.fixture
async def alice_cards(client, user_headers, admin_headers):
    """Alice owns card A (100.00) and card B (0.00), both ACTIVE."""
    card_a = await create_card(client, admin_headers, "alice", CARD_A, "100.00")
    card_b = await create_card(client, admin_headers, "alice", CARD_B, "0.00")
    return {"a": card_a, "b": card_b}
