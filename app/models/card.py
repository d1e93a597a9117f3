"""
Card model — a payment card owned by exactly one user.

The 16-digit card number (PAN) is stored only as deterministic ciphertext
produced by app.security.CardCodec. Because encryption is deterministic, the
encrypted_number column carries the UNIQUE constraint that prevents two cards
with the same PAN, and equality lookups work without decrypting rows.

Balance is a fixed-point decimal (scale 2). The CHECK constraint is the
last line of defense behind the service-level validation: a balance can
never go negative, even if a bug slips past the transfer checks.
"""

import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class CardStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"


class Card(Base):
    __tablename__ = "cards"

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_cards_balance_non_negative"),
        CheckConstraint(
            "expiration_month >= 1 AND expiration_month <= 12",
            name="ck_cards_expiration_month",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Base64 AES-CBC ciphertext of the PAN (fixed IV, so deterministic)
    encrypted_number: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )

    # Uppercase letters and spaces only (validated at the API boundary)
    card_holder_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    expiration_month: Mapped[int] = mapped_column(Integer, nullable=False)
    expiration_year: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[CardStatus] = mapped_column(
        Enum(CardStatus),
        default=CardStatus.ACTIVE,
        nullable=False,
    )

    balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0.00"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
