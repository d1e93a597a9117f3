"""
Card repository: lookups, the filtered listing query, row locks, aggregates.

Row locking:
  lock_by_ids() issues SELECT ... FOR UPDATE over the requested rows in
  ascending id order, so two transfers touching the same pair of cards always
  acquire locks in the same order and cannot deadlock. SQLite has no row
  locks and ignores FOR UPDATE; there the write lock taken by BEGIN IMMEDIATE
  (see app.database) already covers the whole transaction. populate_existing
  refreshes any copies of the rows already loaded in this session with the
  locked values.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import delete, func, select

from app.models.card import Card, CardStatus
from app.models.user import User
from app.repositories.base import BaseRepository, Page


@dataclass
class CardFilter:
    """Optional predicates for the card listing; None means "no constraint"."""
    user_id: int | None = None
    encrypted_number: str | None = None
    number_fragment: str | None = None
    card_holder_name: str | None = None
    status: CardStatus | None = None
    min_balance: Decimal | None = None
    max_balance: Decimal | None = None


@dataclass
class CardAggregates:
    total_cards: int
    active_cards: int
    blocked_cards: int
    total_balance: Decimal


class CardRepository(BaseRepository[Card]):
    model = Card

    # ------------------ Retrieval ------------------ #

    async def find_by_id_and_username(self, card_id: int, username: str) -> Card | None:
        result = await self.execute(
            select(Card)
            .join(User, User.id == Card.user_id)
            .where(Card.id == card_id, User.username == username)
        )
        return result.scalar_one_or_none()

    async def find_by_user(self, user_id: int) -> list[Card]:
        result = await self.execute(
            select(Card).where(Card.user_id == user_id).order_by(Card.id)
        )
        return list(result.scalars().all())

    async def exists_by_encrypted_number(self, encrypted_number: str) -> bool:
        result = await self.execute(
            select(Card.id).where(Card.encrypted_number == encrypted_number)
        )
        return result.first() is not None

    async def find_filtered(
        self, criteria: CardFilter, page: int, size: int, order_by
    ) -> Page[Card]:
        stmt = select(Card)
        if criteria.user_id is not None:
            stmt = stmt.where(Card.user_id == criteria.user_id)
        if criteria.encrypted_number is not None:
            stmt = stmt.where(Card.encrypted_number == criteria.encrypted_number)
        if criteria.number_fragment:
            # Matches against the ciphertext, not the PAN
            stmt = stmt.where(
                func.lower(Card.encrypted_number).contains(criteria.number_fragment.lower())
            )
        if criteria.card_holder_name:
            stmt = stmt.where(
                func.lower(Card.card_holder_name).contains(criteria.card_holder_name.lower())
            )
        if criteria.status is not None:
            stmt = stmt.where(Card.status == criteria.status)
        if criteria.min_balance is not None:
            stmt = stmt.where(Card.balance >= criteria.min_balance)
        if criteria.max_balance is not None:
            stmt = stmt.where(Card.balance <= criteria.max_balance)
        return await self.paginate(stmt.order_by(order_by, Card.id), page, size)

    # ------------------ Locking ------------------ #

    async def lock_by_ids(self, card_ids: list[int]) -> dict[int, Card]:
        result = await self.execute(
            select(Card)
            .where(Card.id.in_(sorted(set(card_ids))))
            .order_by(Card.id)
            .with_for_update()  # Row locks on PostgreSQL; SQLite relies on BEGIN IMMEDIATE
            .execution_options(populate_existing=True)
        )
        return {card.id: card for card in result.scalars().all()}

    # ------------------ Aggregation ------------------ #

    async def aggregates(self) -> CardAggregates:
        status_rows = await self.execute(
            select(Card.status, func.count(Card.id)).group_by(Card.status)
        )
        counts = {status: count for status, count in status_rows.all()}
        total_balance = (
            await self.execute(select(func.coalesce(func.sum(Card.balance), 0)))
        ).scalar_one()
        return CardAggregates(
            total_cards=sum(counts.values()),
            active_cards=counts.get(CardStatus.ACTIVE, 0),
            blocked_cards=counts.get(CardStatus.BLOCKED, 0),
            total_balance=Decimal(str(total_balance)),
        )

    async def balance_summary(self, user_id: int) -> tuple[Decimal, int]:
        result = await self.execute(
            select(func.coalesce(func.sum(Card.balance), 0), func.count(Card.id))
            .where(Card.user_id == user_id)
        )
        total, count = result.one()
        return Decimal(str(total)), count

    # ------------------ Deletion ------------------ #

    async def delete_by_user(self, user_id: int) -> None:
        await self.execute(delete(Card).where(Card.user_id == user_id))
