"""Query parameters shared by the card listing endpoints."""

from dataclasses import dataclass
from decimal import Decimal

from fastapi import Query

from app.exceptions import InvalidParameterError
from app.models.card import CardStatus
from app.services.card_service import CardSearch


@dataclass
class CardListParams:
    search: CardSearch
    page: int
    size: int
    sort_by: str
    sort_direction: str


def parse_card_status(value: str | None) -> CardStatus | None:
    if not value:
        return None
    try:
        return CardStatus(value.upper())
    except ValueError:
        valid = ", ".join(s.value for s in CardStatus)
        raise InvalidParameterError(
            "status", value, f"Invalid status: '{value}'. Valid values are: {valid}"
        ) from None


def card_list_params(
    card_number: str | None = Query(None, alias="cardNumber"),
    card_holder_name: str | None = Query(None, alias="cardHolderName"),
    status: str | None = Query(None, description="ACTIVE or BLOCKED"),
    min_balance: Decimal | None = Query(None, alias="minBalance", ge=0),
    max_balance: Decimal | None = Query(None, alias="maxBalance", ge=0),
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    sort_by: str = Query("id", alias="sortBy"),
    sort_direction: str = Query("desc", alias="sortDirection"),
) -> CardListParams:
    return CardListParams(
        search=CardSearch(
            card_number=card_number,
            card_holder_name=card_holder_name,
            status=parse_card_status(status),
            min_balance=min_balance,
            max_balance=max_balance,
        ),
        page=page,
        size=size,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )
