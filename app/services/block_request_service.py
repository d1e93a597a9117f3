"""
Block request service — users petition, administrators decide.

Create flow:
  1. The card must exist and belong to the petitioning user (CardNotFoundError)
  2. The card must not already be BLOCKED (CardAlreadyBlockedError)
  3. No other PENDING request may exist for the card
     (PendingBlockRequestExistsError)
  4. Insert the request as PENDING

Process flow (admin):
  1. Lock the request row; it must exist (BlockRequestNotFoundError) and
     still be PENDING (BlockRequestAlreadyProcessedError). Concurrent
     decisions on one request wait on that lock, so only the first applies.
  2. The decision must be "approve" or "reject", in any case
     (InvalidDecisionError)
  3. Stamp processed_at, the admin and the comment; on approve, lock the card
     row and block it unless it is already blocked

All of it happens in the request transaction, so an approved request and
its blocked card are committed together.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from app.database import run_with_timeout
from app.exceptions import (
    BlockRequestAlreadyProcessedError,
    BlockRequestNotFoundError,
    CardAlreadyBlockedError,
    CardNotFoundError,
    InvalidDecisionError,
    InvalidParameterError,
    PendingBlockRequestExistsError,
    UserNotFoundError,
)
from app.models.block_request import BlockRequest, BlockRequestStatus
from app.models.card import CardStatus
from app.repositories.base import Page
from app.repositories.block_request_repo import BlockRequestRepository
from app.repositories.card_repo import CardRepository
from app.repositories.user_repo import UserRepository
from app.security import CardCodec
from app.services.card_service import masked_number

logger = logging.getLogger(__name__)

APPROVE = "approve"
REJECT = "reject"


@dataclass
class BlockRequestView:
    id: int
    card_id: int
    card_masked_number: str
    reason: str
    status: BlockRequestStatus
    created_at: datetime
    processed_at: datetime | None
    processed_by_admin: str | None
    admin_comment: str | None


@dataclass
class BlockRequestStatistics:
    total_requests: int
    pending_requests: int
    approved_requests: int
    rejected_requests: int


def parse_status(value: str) -> BlockRequestStatus:
    try:
        return BlockRequestStatus(value.upper())
    except ValueError:
        raise InvalidParameterError("block request status", value) from None


class BlockRequestService:
    def __init__(
        self,
        block_requests: BlockRequestRepository,
        cards: CardRepository,
        users: UserRepository,
        codec: CardCodec,
        timeout_seconds: float | None = None,
    ):
        self.block_requests = block_requests
        self.cards = cards
        self.users = users
        self.codec = codec
        self.timeout_seconds = timeout_seconds

    def to_view(self, request: BlockRequest) -> BlockRequestView:
        admin = request.processed_by_admin
        return BlockRequestView(
            id=request.id,
            card_id=request.card_id,
            card_masked_number=masked_number(self.codec, request.card),
            reason=request.reason,
            status=request.status,
            created_at=request.created_at,
            processed_at=request.processed_at,
            processed_by_admin=admin.username if admin is not None else None,
            admin_comment=request.admin_comment,
        )

    def _to_view_page(self, page: Page[BlockRequest]) -> Page[BlockRequestView]:
        return Page(
            items=[self.to_view(r) for r in page.items],
            total=page.total,
            page=page.page,
            size=page.size,
        )

    async def create_request(self, username: str, card_id: int, reason: str) -> BlockRequestView:
        card = await self.cards.find_by_id_and_username(card_id, username)
        if card is None:
            raise CardNotFoundError()
        if card.status == CardStatus.BLOCKED:
            raise CardAlreadyBlockedError()
        if await self.block_requests.exists_by_card_and_status(card.id, BlockRequestStatus.PENDING):
            raise PendingBlockRequestExistsError()

        request = BlockRequest(
            card=card,
            user_id=card.user_id,
            reason=reason,
            status=BlockRequestStatus.PENDING,
            created_at=datetime.now(timezone.utc),
            processed_by_admin=None,
        )
        await self.block_requests.save(request)
        logger.info("Block request %s filed by %s for card %s", request.id, username, card.id)
        return self.to_view(request)

    async def list_user_requests(self, username: str, page: int, size: int) -> Page[BlockRequestView]:
        user = await self.users.find_by_username(username)
        if user is None:
            raise UserNotFoundError(username)
        return self._to_view_page(await self.block_requests.find_by_user(user.id, page, size))

    async def list_requests(
        self, page: int, size: int, status: str | None = None
    ) -> Page[BlockRequestView]:
        if status:
            result = await self.block_requests.find_by_status(parse_status(status), page, size)
        else:
            result = await self.block_requests.find_all(page, size)
        return self._to_view_page(result)

    async def process_request(
        self,
        admin_username: str,
        request_id: int,
        decision: str,
        admin_comment: str | None = None,
    ) -> BlockRequestView:
        return await run_with_timeout(
            "process block request",
            self._process(admin_username, request_id, decision, admin_comment),
            self.timeout_seconds,
        )

    async def _process(
        self,
        admin_username: str,
        request_id: int,
        decision: str,
        admin_comment: str | None,
    ) -> BlockRequestView:
        request = await self.block_requests.lock_by_id(request_id)
        if request is None:
            raise BlockRequestNotFoundError(request_id)
        if request.status != BlockRequestStatus.PENDING:
            raise BlockRequestAlreadyProcessedError()

        normalized = decision.strip().lower()
        if normalized not in (APPROVE, REJECT):
            raise InvalidDecisionError(decision)

        admin = await self.users.find_by_username(admin_username)
        if admin is None:
            raise UserNotFoundError(admin_username)

        request.processed_at = datetime.now(timezone.utc)
        request.processed_by_admin = admin
        request.admin_comment = admin_comment

        if normalized == APPROVE:
            request.status = BlockRequestStatus.APPROVED
            card = (await self.cards.lock_by_ids([request.card_id]))[request.card_id]
            if card.status != CardStatus.BLOCKED:
                card.status = CardStatus.BLOCKED
        else:
            request.status = BlockRequestStatus.REJECTED

        await self.block_requests.flush()
        logger.info(
            "Block request %s %s by %s", request.id, request.status.value, admin_username
        )
        return self.to_view(request)

    async def statistics(self) -> BlockRequestStatistics:
        counts = await self.block_requests.count_by_status()
        return BlockRequestStatistics(
            total_requests=sum(counts.values()),
            pending_requests=counts[BlockRequestStatus.PENDING],
            approved_requests=counts[BlockRequestStatus.APPROVED],
            rejected_requests=counts[BlockRequestStatus.REJECTED],
        )
