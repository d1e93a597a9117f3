"""
User and Role models — authentication identity and authorities.

Each User is a login credential (username + hashed password) holding a set
of Roles. Roles are pre-seeded at startup (USER, ADMIN) and only their
enabled flag may change at runtime.

Cards, block requests and refresh tokens reference their owner through a
user_id foreign key only; the User side keeps no collections of them.
Deleting a user removes those rows explicitly in UserService.delete_user.

The password is stored as an Argon2id hash — never in plaintext.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class RoleName(str, enum.Enum):
    """Built-in authorities. Inherits from str so values serialize naturally."""
    USER = "USER"
    ADMIN = "ADMIN"


# Association table for the User many-to-many Role relationship
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    role_name: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
    )

    enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )


class User(Base):
    __tablename__ = "users"

    # Numeric surrogate key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Login identifier, unique and indexed
    username: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )

    # Argon2id hash of the password
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Disabled users can't log in and lose all refresh tokens on disable
    enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # Roles are always needed for authorization, so load them eagerly
    roles: Mapped[list[Role]] = relationship(
        secondary=user_roles,
        lazy="selectin",
    )

    @property
    def role_names(self) -> list[str]:
        return sorted(role.role_name for role in self.roles)

    def has_role(self, role_name: str) -> bool:
        return any(role.role_name == role_name for role in self.roles)
