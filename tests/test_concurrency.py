"""
Tests for concurrent writers against a file-backed SQLite database.

The shared in-memory engine in conftest runs every session over one
connection, so these tests build their own engine on a temporary file and
give each task its own session and transaction.

These tests verify:
  - Concurrent transfers conserve the combined balance
  - Concurrent transfers never overdraw the source card
  - Two admins deciding one block request at once: only one decision applies
  - Concurrent logins never leave a user above the session cap
  - Read-only transactions never persist changes
"""

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal

import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import Base, build_engine, transaction_scope
from app.dependencies import get_card_codec
from app.exceptions import BlockRequestAlreadyProcessedError, InsufficientFundsError
from app.models.block_request import BlockRequestStatus
from app.models.card import Card, CardStatus
from app.models.refresh_token import RefreshToken
from app.models.user import Role, RoleName
from app.repositories.block_request_repo import BlockRequestRepository
from app.repositories.card_repo import CardRepository
from app.repositories.refresh_token_repo import RefreshTokenRepository
from app.repositories.user_repo import RoleRepository, UserRepository
from app.services.block_request_service import BlockRequestService
from app.services.card_service import CardService
from app.services.session_store import SessionStore
from app.services.user_service import UserService

CARD_A = "4111111111111111"
CARD_B = "4222222222222222"
CARD_C = "4333333333333333"


@pytest_asyncio.fixture
async def file_factory(tmp_path):
    """Sessions on a fresh SQLite file, with roles and three users seeded."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'bank.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with transaction_scope(factory) as session:
        session.add_all([Role(role_name=name.value, enabled=True) for name in RoleName])
    async with transaction_scope(factory) as session:
        users = user_service(session)
        for username in ("alice", "adm1", "adm2"):
            await users.register(username, "SecurePass123!")

    yield factory
    await engine.dispose()


def user_service(session) -> UserService:
    return UserService(
        users=UserRepository(session),
        roles=RoleRepository(session),
        cards=CardRepository(session),
        block_requests=BlockRequestRepository(session),
        tokens=RefreshTokenRepository(session),
    )


def card_service(session) -> CardService:
    return CardService(
        cards=CardRepository(session),
        users=UserRepository(session),
        block_requests=BlockRequestRepository(session),
        codec=get_card_codec(),
    )


def block_request_service(session) -> BlockRequestService:
    return BlockRequestService(
        block_requests=BlockRequestRepository(session),
        cards=CardRepository(session),
        users=UserRepository(session),
        codec=get_card_codec(),
    )


def session_store(session, max_sessions: int) -> SessionStore:
    return SessionStore(
        tokens=RefreshTokenRepository(session),
        users=UserRepository(session),
        refresh_ttl=timedelta(days=7),
        max_sessions_per_user=max_sessions,
    )


async def issue_cards(factory, *numbers: str, balance: str = "100.00") -> list[int]:
    async with transaction_scope(factory) as session:
        cards = card_service(session)
        views = [
            await cards.create_card(
                "alice", number, "ALICE TESTER", 12, datetime.now().year + 1, Decimal(balance)
            )
            for number in numbers
        ]
    return [view.id for view in views]


async def card_balances(factory) -> list[Decimal]:
    async with factory() as session:
        result = await session.execute(select(Card.balance).order_by(Card.id))
        return [Decimal(balance) for balance in result.scalars().all()]


async def transfer(factory, source: str, dest: str, amount: str = "10.00"):
    async with transaction_scope(factory) as session:
        return await card_service(session).transfer("alice", source, dest, Decimal(amount))


async def process(factory, admin: str, request_id: int, decision: str):
    async with transaction_scope(factory) as session:
        return await block_request_service(session).process_request(admin, request_id, decision)


async def issue_session(factory, max_sessions: int) -> str:
    async with transaction_scope(factory) as session:
        return await session_store(session, max_sessions).issue("alice")


class TestConcurrentTransfers:

    async def test_total_is_conserved(self, file_factory):
        await issue_cards(file_factory, CARD_A, CARD_B, CARD_C)

        results = await asyncio.gather(
            *[transfer(file_factory, CARD_A, CARD_B) for _ in range(5)],
            *[transfer(file_factory, CARD_C, CARD_B) for _ in range(5)],
        )

        assert len(results) == 10
        balances = await card_balances(file_factory)
        assert balances == [Decimal("50.00"), Decimal("200.00"), Decimal("50.00")]
        assert sum(balances) == Decimal("300.00")

    async def test_opposite_directions(self, file_factory):
        await issue_cards(file_factory, CARD_A, CARD_B)

        await asyncio.gather(
            *[transfer(file_factory, CARD_A, CARD_B, "7.00") for _ in range(4)],
            *[transfer(file_factory, CARD_B, CARD_A, "7.00") for _ in range(4)],
        )

        assert await card_balances(file_factory) == [Decimal("100.00"), Decimal("100.00")]

    async def test_source_never_overdrawn(self, file_factory):
        await issue_cards(file_factory, CARD_A, CARD_B)

        results = await asyncio.gather(
            *[transfer(file_factory, CARD_A, CARD_B) for _ in range(12)],
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 2
        assert all(isinstance(f, InsufficientFundsError) for f in failures)
        assert await card_balances(file_factory) == [Decimal("0.00"), Decimal("200.00")]


class TestConcurrentBlockDecisions:

    async def test_only_one_decision_applies(self, file_factory):
        [card_id] = await issue_cards(file_factory, CARD_A)
        async with transaction_scope(file_factory) as session:
            request = await block_request_service(session).create_request(
                "alice", card_id, "lost on train 2024"
            )

        results = await asyncio.gather(
            process(file_factory, "adm1", request.id, "approve"),
            process(file_factory, "adm2", request.id, "reject"),
            return_exceptions=True,
        )

        decided = [r for r in results if not isinstance(r, Exception)]
        refused = [r for r in results if isinstance(r, Exception)]
        assert len(decided) == 1
        assert len(refused) == 1
        assert isinstance(refused[0], BlockRequestAlreadyProcessedError)

        async with file_factory() as session:
            stored = await BlockRequestRepository(session).get_by_id(request.id)
            card = await CardRepository(session).get_by_id(card_id)
            assert stored.status == decided[0].status
            assert stored.processed_by_admin.username == decided[0].processed_by_admin
            expected = (
                CardStatus.BLOCKED
                if stored.status == BlockRequestStatus.APPROVED
                else CardStatus.ACTIVE
            )
            assert card.status == expected


class TestConcurrentLogins:

    async def test_cap_holds(self, file_factory):
        for _ in range(2):
            await issue_session(file_factory, max_sessions=3)

        await asyncio.gather(*[issue_session(file_factory, max_sessions=3) for _ in range(4)])

        async with file_factory() as session:
            user = await UserRepository(session).find_by_username("alice")
            assert await session_store(session, 3).active_count(user.id) == 3
            total = (await session.execute(select(func.count(RefreshToken.id)))).scalar_one()
            assert total == 6


class TestReadOnlyTransactions:

    async def test_changes_are_discarded(self, file_factory):
        async with transaction_scope(file_factory, read_only=True) as session:
            user = await UserRepository(session).find_by_username("alice")
            user.enabled = False
            await session.flush()

        async with file_factory() as session:
            user = await UserRepository(session).find_by_username("alice")
            assert user.enabled is True

    async def test_reads_see_committed_data(self, file_factory):
        await issue_cards(file_factory, CARD_A)

        async with transaction_scope(file_factory, read_only=True) as session:
            summary = await card_service(session).balance_summary("alice")

        assert summary.total_balance == Decimal("100.00")
