"""
BlockRequest model — a user's petition to block one of their cards.

State machine:

              create                  approve
       (none) ──────▶ PENDING ────────────────▶ APPROVED  (terminal)
                         │
                         └──── reject ────────▶ REJECTED  (terminal)

At most one PENDING request may exist per card; BlockRequestService checks
this before inserting. Once processed, status, processed_at and the admin
reference never change again.

The card and the processing admin are many-to-one references, loaded with
the request so the response can show the masked number and admin username.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.card import Card
from app.models.user import User


class BlockRequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class BlockRequest(Base):
    __tablename__ = "block_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    card_id: Mapped[int] = mapped_column(
        ForeignKey("cards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # The petitioning user
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    reason: Mapped[str] = mapped_column(String(500), nullable=False)

    status: Mapped[BlockRequestStatus] = mapped_column(
        Enum(BlockRequestStatus),
        default=BlockRequestStatus.PENDING,
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    processed_by_admin_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    admin_comment: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # --- Relationships (many-to-one only) ---
    card: Mapped[Card] = relationship(lazy="selectin")
    processed_by_admin: Mapped[User | None] = relationship(
        foreign_keys=[processed_by_admin_id],
        lazy="selectin",
    )
