"""
Admin card router — card issuance, state changes, statistics and the
block-request queue.

Endpoints (ADMIN role required):
  GET    /admin/cards                                   — Filtered page of all cards
  POST   /admin/cards                                   — Issue a card to a user
  GET    /admin/cards/statistics                        — Fleet statistics
  GET    /admin/cards/user/{username}                   — Filtered page of one user's cards
  GET    /admin/cards/block-requests                    — Block requests, optional status filter
  GET    /admin/cards/block-requests/statistics         — Block request counts
  POST   /admin/cards/block-requests/{request_id}/process — Approve or reject
  GET    /admin/cards/{card_id}                         — One card
  POST   /admin/cards/{card_id}/activate                — Set ACTIVE (idempotent)
  POST   /admin/cards/{card_id}/block                   — Set BLOCKED
  PUT    /admin/cards/{card_id}/balance                 — Overwrite the balance
  DELETE /admin/cards/{card_id}                         — Delete a zero-balance card

Static paths are declared before /{card_id} so that e.g. "statistics" is
never parsed as a card id.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import get_block_request_service, get_card_service, require_admin
from app.models.user import User
from app.routers.params import CardListParams, card_list_params
from app.schemas.block_request import (
    BlockRequestProcessRequest,
    BlockRequestResponse,
    BlockRequestStatisticsResponse,
)
from app.schemas.card import (
    AdminCreateCardRequest,
    CardResponse,
    CardStatisticsResponse,
    UpdateBalanceRequest,
)
from app.schemas.common import MessageResponse, PageResponse
from app.services.block_request_service import BlockRequestService
from app.services.card_service import CardService

router = APIRouter()


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=PageResponse[CardResponse],
    summary="List all cards",
)
async def list_cards(
    params: CardListParams = Depends(card_list_params),
    admin: User = Depends(require_admin),
    cards: CardService = Depends(get_card_service),
):
    page = await cards.search_cards(
        params.search,
        page=params.page,
        size=params.size,
        sort_by=params.sort_by,
        sort_direction=params.sort_direction,
    )
    return PageResponse[CardResponse].build(page, CardResponse)


@router.post(
    "",
    response_model=CardResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a card to a user",
)
async def create_card(
    request: AdminCreateCardRequest,
    admin: User = Depends(require_admin),
    cards: CardService = Depends(get_card_service),
):
    """
    Issue an ACTIVE card with the given number and opening balance.

    The number is encrypted before storage; a number already on file is
    rejected with 400.
    """
    card = await cards.create_card(
        username=request.username,
        card_number=request.card_number,
        card_holder_name=request.card_holder_name,
        expiration_month=request.expiration_month,
        expiration_year=request.expiration_year,
        initial_balance=request.initial_balance,
    )
    return CardResponse.model_validate(card)


@router.get(
    "/statistics",
    response_model=CardStatisticsResponse,
    summary="Card statistics",
)
async def card_statistics(
    admin: User = Depends(require_admin),
    cards: CardService = Depends(get_card_service),
):
    return CardStatisticsResponse.model_validate(await cards.statistics())


@router.get(
    "/user/{username}",
    response_model=PageResponse[CardResponse],
    summary="List a user's cards",
)
async def list_user_cards(
    username: str,
    params: CardListParams = Depends(card_list_params),
    admin: User = Depends(require_admin),
    cards: CardService = Depends(get_card_service),
):
    page = await cards.search_cards(
        params.search,
        page=params.page,
        size=params.size,
        sort_by=params.sort_by,
        sort_direction=params.sort_direction,
        username=username,
    )
    return PageResponse[CardResponse].build(page, CardResponse)


# ---------------------------------------------------------------------------
# Block requests
# ---------------------------------------------------------------------------

@router.get(
    "/block-requests",
    response_model=PageResponse[BlockRequestResponse],
    summary="List block requests",
)
async def list_block_requests(
    status_filter: str | None = Query(None, alias="status", description="PENDING, APPROVED or REJECTED"),
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    block_requests: BlockRequestService = Depends(get_block_request_service),
):
    result = await block_requests.list_requests(page, size, status_filter)
    return PageResponse[BlockRequestResponse].build(result, BlockRequestResponse)


@router.get(
    "/block-requests/statistics",
    response_model=BlockRequestStatisticsResponse,
    summary="Block request statistics",
)
async def block_request_statistics(
    admin: User = Depends(require_admin),
    block_requests: BlockRequestService = Depends(get_block_request_service),
):
    return BlockRequestStatisticsResponse.model_validate(await block_requests.statistics())


@router.post(
    "/block-requests/{request_id}/process",
    response_model=BlockRequestResponse,
    summary="Approve or reject a block request",
)
async def process_block_request(
    request_id: int,
    request: BlockRequestProcessRequest,
    admin: User = Depends(require_admin),
    block_requests: BlockRequestService = Depends(get_block_request_service),
):
    """
    Decide a PENDING request. "approve" blocks the card in the same
    transaction; "reject" leaves the card untouched. A request can be
    processed only once.
    """
    result = await block_requests.process_request(
        admin_username=admin.username,
        request_id=request_id,
        decision=request.decision,
        admin_comment=request.admin_comment,
    )
    return BlockRequestResponse.model_validate(result)


# ---------------------------------------------------------------------------
# Single card
# ---------------------------------------------------------------------------

@router.get(
    "/{card_id}",
    response_model=CardResponse,
    summary="Get a card",
)
async def get_card(
    card_id: int,
    admin: User = Depends(require_admin),
    cards: CardService = Depends(get_card_service),
):
    return CardResponse.model_validate(await cards.get_card(card_id))


@router.post(
    "/{card_id}/activate",
    response_model=CardResponse,
    summary="Activate a card",
)
async def activate_card(
    card_id: int,
    admin: User = Depends(require_admin),
    cards: CardService = Depends(get_card_service),
):
    return CardResponse.model_validate(await cards.activate_card(card_id))


@router.post(
    "/{card_id}/block",
    response_model=CardResponse,
    summary="Block a card",
)
async def block_card(
    card_id: int,
    admin: User = Depends(require_admin),
    cards: CardService = Depends(get_card_service),
):
    return CardResponse.model_validate(await cards.block_card(card_id))


@router.put(
    "/{card_id}/balance",
    response_model=CardResponse,
    summary="Set a card's balance",
)
async def update_balance(
    card_id: int,
    request: UpdateBalanceRequest,
    admin: User = Depends(require_admin),
    cards: CardService = Depends(get_card_service),
):
    return CardResponse.model_validate(await cards.update_balance(card_id, request.new_balance))


@router.delete(
    "/{card_id}",
    response_model=MessageResponse,
    summary="Delete a card",
)
async def delete_card(
    card_id: int,
    admin: User = Depends(require_admin),
    cards: CardService = Depends(get_card_service),
):
    """Only cards with a zero balance can be deleted."""
    await cards.delete_card(card_id)
    return MessageResponse(
        timestamp=datetime.now(timezone.utc),
        status=status.HTTP_200_OK,
        message="Card deleted successfully",
    )
