"""
RefreshToken model — one row per login session.

The raw token (a UUIDv4 string) is handed to the client once and never
stored. token_hash holds its SHA-256 hex digest, which is unique and indexed
because every refresh/logout looks the row up by it.

A session is "active" while revoked is false and expires_at is in the
future. Revocation is one-way: nothing ever sets revoked back to false.
Revoked rows that have also expired are deleted by the cleanup job.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.user import User


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    token_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    revoked: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    # Only loaded on purpose (joinedload in RefreshTokenRepository)
    user: Mapped[User] = relationship(lazy="raise")
