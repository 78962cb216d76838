"""Database models for the authentication core.

## Schema Overview

```
users
└── sessions (1:N, cascade delete)
```

Rows are always mapped through named columns. Timestamps are stored in UTC
and always come back timezone-aware, including on SQLite which does not keep
offsets.

## Security Notes

- Session ids are opaque random tokens; they carry no user data
- ``user_agent`` and ``ip_address`` are kept for auditing only and are never
  used for trust decisions
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime normalized to UTC on the way in and out."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("Naive datetimes are not allowed")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""


class HostStatus(str, Enum):
    """Host review status of a user."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Role(str, Enum):
    """Explicit user role."""

    USER = "user"
    ADMIN = "admin"


class User(Base):
    """User identity.

    Users are keyed by email. The authentication core reads and creates
    users but the surrounding application owns the rest of their lifecycle.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # Account status
    host_status: Mapped[str] = mapped_column(
        String(16), default=HostStatus.PENDING.value, nullable=False
    )  # pending, approved, rejected
    role: Mapped[str] = mapped_column(
        String(16), default=Role.USER.value, nullable=False
    )  # user, admin
    admin_notes: Mapped[str | None] = mapped_column(Text)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )

    # Relationships
    sessions: Mapped[list["Session"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class Session(Base):
    """One authenticated browser or client binding.

    ``expires_at`` is fixed at creation; only ``last_accessed_at`` moves.
    """

    __tablename__ = "sessions"
    __table_args__ = (
        Index("ix_sessions_user_id", "user_id"),
        Index("ix_sessions_expires_at", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    provider: Mapped[str] = mapped_column(String(32), nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    last_accessed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # Informational only
    user_agent: Mapped[str | None] = mapped_column(String(512))
    ip_address: Mapped[str | None] = mapped_column(String(64))

    # Relationships
    user: Mapped["User"] = relationship(back_populates="sessions")

    def is_valid(self, now: datetime) -> bool:
        """A session is valid strictly before its expiry."""
        return now < self.expires_at

    def __repr__(self) -> str:
        return f"<Session user_id={self.user_id} provider={self.provider}>"
