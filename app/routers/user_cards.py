"""
Card holder router — a user's own cards, transfers and block requests.

Endpoints:
  GET  /user/cards                      — Filtered page of the caller's cards
  GET  /user/cards/balance              — Total balance across the caller's cards
  GET  /user/cards/block-requests       — The caller's block requests (newest first)
  POST /user/cards/transfer             — Move money between two own cards
  GET  /user/cards/{card_id}            — One own card (404 if not owned)
  POST /user/cards/{card_id}/block-request — Ask an admin to block a card

Every endpoint is scoped to the authenticated user: another user's card is
indistinguishable from a missing one.
"""

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import get_block_request_service, get_card_service, require_user
from app.models.user import User
from app.routers.params import CardListParams, card_list_params
from app.schemas.block_request import BlockRequestCreateRequest, BlockRequestResponse
from app.schemas.card import BalanceResponse, CardResponse, TransferRequest, TransferResponse
from app.schemas.common import PageResponse
from app.services.block_request_service import BlockRequestService
from app.services.card_service import CardService

router = APIRouter()


@router.get(
    "",
    response_model=PageResponse[CardResponse],
    summary="List my cards",
)
async def list_my_cards(
    params: CardListParams = Depends(card_list_params),
    user: User = Depends(require_user),
    cards: CardService = Depends(get_card_service),
):
    """
    Filters: cardNumber, cardHolderName, status, minBalance, maxBalance.
    Sorting: sortBy (id, cardNumber, cardHolderName, balance, status,
    createdAt) and sortDirection (asc/desc).
    """
    page = await cards.search_cards(
        params.search,
        page=params.page,
        size=params.size,
        sort_by=params.sort_by,
        sort_direction=params.sort_direction,
        username=user.username,
    )
    return PageResponse[CardResponse].build(page, CardResponse)


@router.get(
    "/balance",
    response_model=BalanceResponse,
    summary="Total balance of my cards",
)
async def my_balance(
    user: User = Depends(require_user),
    cards: CardService = Depends(get_card_service),
):
    return BalanceResponse.model_validate(await cards.balance_summary(user.username))


@router.get(
    "/block-requests",
    response_model=PageResponse[BlockRequestResponse],
    summary="List my block requests",
)
async def list_my_block_requests(
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    user: User = Depends(require_user),
    block_requests: BlockRequestService = Depends(get_block_request_service),
):
    result = await block_requests.list_user_requests(user.username, page, size)
    return PageResponse[BlockRequestResponse].build(result, BlockRequestResponse)


@router.post(
    "/transfer",
    response_model=TransferResponse,
    summary="Transfer between my cards",
)
async def transfer(
    request: TransferRequest,
    user: User = Depends(require_user),
    cards: CardService = Depends(get_card_service),
):
    """
    Move money between two of the caller's cards, named by full card number.

    - Both cards must belong to the caller (403 otherwise)
    - Both cards must be ACTIVE and the source must cover the amount (400)
    - Both balance updates commit together or not at all
    """
    result = await cards.transfer(
        username=user.username,
        from_card_number=request.from_card_number,
        to_card_number=request.to_card_number,
        amount=request.amount,
        description=request.description,
    )
    return TransferResponse.model_validate(result)


@router.get(
    "/{card_id}",
    response_model=CardResponse,
    summary="Get one of my cards",
)
async def get_my_card(
    card_id: int,
    user: User = Depends(require_user),
    cards: CardService = Depends(get_card_service),
):
    return CardResponse.model_validate(await cards.get_user_card(card_id, user.username))


@router.post(
    "/{card_id}/block-request",
    response_model=BlockRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request blocking of my card",
)
async def create_block_request(
    card_id: int,
    request: BlockRequestCreateRequest,
    user: User = Depends(require_user),
    block_requests: BlockRequestService = Depends(get_block_request_service),
):
    """
    File a PENDING block request. Rejected if the card is already blocked
    or already has a pending request.
    """
    result = await block_requests.create_request(user.username, card_id, request.reason)
    return BlockRequestResponse.model_validate(result)
