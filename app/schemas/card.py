"""
Pydantic schemas for Card and Transfer endpoints.

Card numbers are NEVER returned in API responses, only the masked form
("**** **** **** 1234"). The full number appears in exactly two request
bodies: card creation (admin) and transfers (the owner names their cards).

Monetary values are Decimal and serialize as strings ("60.00") so no
precision is lost to floating point.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_validator

from app.models.card import CardStatus
from app.schemas.common import ApiModel


class AdminCreateCardRequest(ApiModel):
    """Request body for POST /admin/cards."""
    username: str = Field(min_length=1)
    card_number: str = Field(pattern=r"^[0-9]{16}$")
    card_holder_name: str = Field(min_length=1, max_length=100, pattern=r"^[A-Z ]+$")
    expiration_month: int = Field(ge=1, le=12)
    expiration_year: int
    initial_balance: Decimal = Field(default=Decimal("0.00"), ge=0, decimal_places=2)

    @field_validator("expiration_year")
    @classmethod
    def not_expired(cls, value: int) -> int:
        if value < datetime.now().year:
            raise ValueError("Expiration year cannot be in the past")
        return value


class CardResponse(ApiModel):
    """Public representation of a card (masked number, no ciphertext)."""
    id: int
    masked_card_number: str
    card_holder_name: str
    expiration_month: int
    expiration_year: int
    balance: Decimal
    status: CardStatus


class UpdateBalanceRequest(ApiModel):
    """Request body for PUT /admin/cards/{id}/balance."""
    new_balance: Decimal = Field(ge=0, decimal_places=2)


class CardStatisticsResponse(ApiModel):
    total_cards: int
    active_cards: int
    blocked_cards: int
    total_balance: Decimal
    average_balance: Decimal


class BalanceResponse(ApiModel):
    total_balance: Decimal
    cards_count: int
    username: str


class TransferRequest(ApiModel):
    """Request body for POST /user/cards/transfer."""
    from_card_number: str = Field(min_length=1)
    to_card_number: str = Field(min_length=1)
    amount: Decimal = Field(ge=Decimal("0.01"), decimal_places=2)
    description: str | None = Field(default=None, max_length=255)


class TransferResponse(ApiModel):
    """Response body for a successful transfer."""
    transaction_id: uuid.UUID
    from_masked: str
    to_masked: str
    amount: Decimal
    from_balance: Decimal
    to_balance: Decimal
    description: str | None
    transferred_at: datetime
