"""
Card service — card lifecycle, filtered listing, balances and transfers.

Card numbers never leave this service in plaintext. They are encrypted with
the shared CardCodec on the way in, and on the way out only the masked form
("**** **** **** 1234") is produced. If a stored value cannot be decrypted
(corrupt row, rotated key) the masked form falls back to
"**** **** **** ****" so one bad row doesn't break a whole listing.

Transfer flow (transfer):
  1. Load the acting user and every card they own
  2. Decrypt each number and pick the source and destination cards by exact
     match; a number the user doesn't own yields CardAccessDeniedError
  3. Lock both rows (ascending id, see CardRepository.lock_by_ids)
  4. Validate, in this order: source ACTIVE, destination ACTIVE, enough
     funds, different cards. Each failure is a TransferError.
  5. Move the amount. Both updates are flushed in the request transaction,
     so either both balances change or neither does.

Money is Decimal throughout; balances are stored as NUMERIC(18, 2).
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from app.database import run_with_timeout
from app.exceptions import (
    CardAccessDeniedError,
    CardAlreadyBlockedError,
    CardNotFoundError,
    CardNumberExistsError,
    CryptoError,
    InsufficientFundsError,
    PositiveBalanceError,
    TransferError,
    UserNotFoundError,
)
from app.models.card import Card, CardStatus
from app.repositories.base import Page
from app.repositories.block_request_repo import BlockRequestRepository
from app.repositories.card_repo import CardFilter, CardRepository
from app.repositories.user_repo import UserRepository
from app.security import CardCodec
from app.services.paging import resolve_sort

logger = logging.getLogger(__name__)

MASK_PREFIX = "**** **** **** "
MASK_UNKNOWN = "**** **** **** ****"
CENTS = Decimal("0.01")
PAN_PATTERN = re.compile(r"^[0-9]{16}$")

CARD_SORT_FIELDS = {
    "id": Card.id,
    "cardNumber": Card.encrypted_number,
    "cardHolderName": Card.card_holder_name,
    "balance": Card.balance,
    "status": Card.status,
    "createdAt": Card.created_at,
}


@dataclass
class CardView:
    """A card as shown to API clients: masked number, no ciphertext."""
    id: int
    masked_card_number: str
    card_holder_name: str
    expiration_month: int
    expiration_year: int
    balance: Decimal
    status: CardStatus


@dataclass
class TransferResult:
    transaction_id: uuid.UUID
    from_masked: str
    to_masked: str
    amount: Decimal
    from_balance: Decimal
    to_balance: Decimal
    description: str | None
    transferred_at: datetime


@dataclass
class CardStatistics:
    total_cards: int
    active_cards: int
    blocked_cards: int
    total_balance: Decimal
    average_balance: Decimal


@dataclass
class BalanceSummary:
    total_balance: Decimal
    cards_count: int
    username: str


@dataclass
class CardSearch:
    """Public filter parameters of the card listings."""
    card_number: str | None = None
    card_holder_name: str | None = None
    status: CardStatus | None = None
    min_balance: Decimal | None = None
    max_balance: Decimal | None = None


def mask_card_number(plaintext: str) -> str:
    return MASK_PREFIX + plaintext[-4:]


def masked_number(codec: CardCodec, card: Card) -> str:
    """Masked display number, or MASK_UNKNOWN if the stored value won't decrypt."""
    try:
        return mask_card_number(codec.decrypt(card.encrypted_number))
    except CryptoError:
        logger.error("Could not decrypt number of card %s", card.id)
        return MASK_UNKNOWN


class CardService:
    def __init__(
        self,
        cards: CardRepository,
        users: UserRepository,
        block_requests: BlockRequestRepository,
        codec: CardCodec,
        timeout_seconds: float | None = None,
    ):
        self.cards = cards
        self.users = users
        self.block_requests = block_requests
        self.codec = codec
        self.timeout_seconds = timeout_seconds

    # ------------------ Presentation ------------------ #

    def to_view(self, card: Card) -> CardView:
        return CardView(
            id=card.id,
            masked_card_number=masked_number(self.codec, card),
            card_holder_name=card.card_holder_name,
            expiration_month=card.expiration_month,
            expiration_year=card.expiration_year,
            balance=card.balance,
            status=card.status,
        )

    def to_view_page(self, page: Page[Card]) -> Page[CardView]:
        return Page(
            items=[self.to_view(card) for card in page.items],
            total=page.total,
            page=page.page,
            size=page.size,
        )

    # ------------------ Creation ------------------ #

    async def create_card(
        self,
        username: str,
        card_number: str,
        card_holder_name: str,
        expiration_month: int,
        expiration_year: int,
        initial_balance: Decimal = Decimal("0.00"),
    ) -> CardView:
        """
        Issue a card to a user (admin operation).

        Raises:
            UserNotFoundError: The target user doesn't exist.
            CardNumberExistsError: A card with this number already exists.
        """
        user = await self.users.find_by_username(username)
        if user is None:
            raise UserNotFoundError(username)

        encrypted = self.codec.encrypt(card_number)
        if await self.cards.exists_by_encrypted_number(encrypted):
            raise CardNumberExistsError()

        card = Card(
            user_id=user.id,
            encrypted_number=encrypted,
            card_holder_name=card_holder_name,
            expiration_month=expiration_month,
            expiration_year=expiration_year,
            status=CardStatus.ACTIVE,
            balance=initial_balance.quantize(CENTS, rounding=ROUND_HALF_UP),
        )
        await self.cards.save(card)
        logger.info(
            "Issued card %s (%s) to %s", card.id, mask_card_number(card_number), username
        )
        return self.to_view(card)

    # ------------------ Reads ------------------ #

    async def _get_card(self, card_id: int) -> Card:
        card = await self.cards.get_by_id(card_id)
        if card is None:
            raise CardNotFoundError()
        return card

    async def get_card(self, card_id: int) -> CardView:
        return self.to_view(await self._get_card(card_id))

    async def get_user_card(self, card_id: int, username: str) -> CardView:
        card = await self.cards.find_by_id_and_username(card_id, username)
        if card is None:
            raise CardNotFoundError()
        return self.to_view(card)

    async def search_cards(
        self,
        search: CardSearch,
        page: int,
        size: int,
        sort_by: str = "id",
        sort_direction: str = "desc",
        username: str | None = None,
    ) -> Page[CardView]:
        """
        Filtered, sorted, paged card listing.

        With `username` set, only that user's cards are considered (unknown
        user: UserNotFoundError). The card number filter compares against the
        stored ciphertext: a full 16-digit number is encrypted and matched
        exactly, anything else is a case-insensitive substring of the
        ciphertext, which will not match fragments of a plaintext number.
        """
        order_by = resolve_sort(CARD_SORT_FIELDS, sort_by, sort_direction)
        criteria = CardFilter(
            card_holder_name=search.card_holder_name,
            status=search.status,
            min_balance=search.min_balance,
            max_balance=search.max_balance,
        )
        if search.card_number:
            if PAN_PATTERN.match(search.card_number):
                criteria.encrypted_number = self.codec.encrypt(search.card_number)
            else:
                criteria.number_fragment = search.card_number
        if username is not None:
            user = await self.users.find_by_username(username)
            if user is None:
                raise UserNotFoundError(username)
            criteria.user_id = user.id

        page_result = await self.cards.find_filtered(criteria, page, size, order_by)
        return self.to_view_page(page_result)

    async def balance_summary(self, username: str) -> BalanceSummary:
        user = await self.users.find_by_username(username)
        if user is None:
            raise UserNotFoundError(username)
        total, count = await self.cards.balance_summary(user.id)
        return BalanceSummary(
            total_balance=total.quantize(CENTS, rounding=ROUND_HALF_UP),
            cards_count=count,
            username=username,
        )

    async def statistics(self) -> CardStatistics:
        agg = await self.cards.aggregates()
        total_balance = agg.total_balance.quantize(CENTS, rounding=ROUND_HALF_UP)
        if agg.total_cards:
            average = (agg.total_balance / agg.total_cards).quantize(CENTS, rounding=ROUND_HALF_UP)
        else:
            average = Decimal("0.00")
        return CardStatistics(
            total_cards=agg.total_cards,
            active_cards=agg.active_cards,
            blocked_cards=agg.blocked_cards,
            total_balance=total_balance,
            average_balance=average,
        )

    # ------------------ State transitions ------------------ #

    async def activate_card(self, card_id: int) -> CardView:
        card = await self._get_card(card_id)
        if card.status != CardStatus.ACTIVE:
            card.status = CardStatus.ACTIVE
            await self.cards.flush()
            logger.info("Activated card %s", card_id)
        return self.to_view(card)

    async def block_card(self, card_id: int) -> CardView:
        card = await self._get_card(card_id)
        if card.status == CardStatus.BLOCKED:
            raise CardAlreadyBlockedError()
        card.status = CardStatus.BLOCKED
        await self.cards.flush()
        logger.info("Blocked card %s", card_id)
        return self.to_view(card)

    async def update_balance(self, card_id: int, new_balance: Decimal) -> CardView:
        card = await self._get_card(card_id)
        old_balance = card.balance
        card.balance = new_balance.quantize(CENTS, rounding=ROUND_HALF_UP)
        await self.cards.flush()
        logger.info("Balance of card %s changed from %s to %s", card_id, old_balance, card.balance)
        return self.to_view(card)

    async def delete_card(self, card_id: int) -> None:
        card = await self._get_card(card_id)
        if card.balance > 0:
            raise PositiveBalanceError()
        await self.block_requests.delete_by_card(card.id)
        await self.cards.delete(card)
        logger.info("Deleted card %s", card_id)

    # ------------------ Transfers ------------------ #

    async def transfer(
        self,
        username: str,
        from_card_number: str,
        to_card_number: str,
        amount: Decimal,
        description: str | None = None,
    ) -> TransferResult:
        """
        Move `amount` between two cards of the same user.

        Raises:
            UserNotFoundError: The acting user doesn't exist.
            CardAccessDeniedError: Either number isn't one of the user's cards.
            TransferError: A card is not active, funds are insufficient,
                or source and destination are the same card.
            TransactionTimeoutError: The transfer didn't finish in time.
        """
        return await run_with_timeout(
            "transfer",
            self._transfer(username, from_card_number, to_card_number, amount, description),
            self.timeout_seconds,
        )

    async def _transfer(
        self,
        username: str,
        from_card_number: str,
        to_card_number: str,
        amount: Decimal,
        description: str | None,
    ) -> TransferResult:
        user = await self.users.find_by_username(username)
        if user is None:
            raise UserNotFoundError(username)

        source = dest = None
        for card in await self.cards.find_by_user(user.id):
            try:
                number = self.codec.decrypt(card.encrypted_number)
            except CryptoError:
                logger.error("Skipping card %s during transfer: undecryptable number", card.id)
                continue
            if number == from_card_number:
                source = card
            if number == to_card_number:
                dest = card

        if source is None:
            raise CardAccessDeniedError(
                f"Card not found or access denied: {mask_card_number(from_card_number)}"
            )
        if dest is None:
            raise CardAccessDeniedError(
                f"Card not found or access denied: {mask_card_number(to_card_number)}"
            )

        locked = await self.cards.lock_by_ids([source.id, dest.id])
        source, dest = locked[source.id], locked[dest.id]

        if source.status != CardStatus.ACTIVE:
            raise TransferError("Source card is not active")
        if dest.status != CardStatus.ACTIVE:
            raise TransferError("Destination card is not active")
        if source.balance < amount:
            raise InsufficientFundsError()
        if source.id == dest.id:
            raise TransferError("Cannot transfer to the same card")

        source.balance = source.balance - amount
        dest.balance = dest.balance + amount
        await self.cards.flush()

        result = TransferResult(
            transaction_id=uuid.uuid4(),
            from_masked=mask_card_number(from_card_number),
            to_masked=mask_card_number(to_card_number),
            amount=amount,
            from_balance=source.balance,
            to_balance=dest.balance,
            description=description,
            transferred_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Transfer %s: %s %s -> %s by %s",
            result.transaction_id, amount, result.from_masked, result.to_masked, username,
        )
        return result
