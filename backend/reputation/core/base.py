"""SQLAlchemy declarative base and shared mixins.

Rationale:
- UUID primary keys so rating, anomaly and history rows can be referenced from
  audit records and external verifiers without exposing sequential IDs.
- Explicit UTC-only, timezone-aware timestamps for audit timelines.
- Portable column types: native UUID/JSONB on PostgreSQL, generic fallbacks
  elsewhere (the test suite runs on SQLite).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


UTC = timezone.utc

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class UUIDPrimaryKeyMixin:
    """UUID primary key mixin (application-generated)."""

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )


class CreatedAtMixin:
    """Created-at timestamp mixin (UTC timestamptz).

    Engine writes pass an explicit UTC value; the server default only covers
    rows inserted outside the engine.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class UpdatedAtMixin:
    """Updated-at timestamp mixin (UTC timestamptz).

    Only use for mutable tables. History and cross-reference rows are append-only.
    """

    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=func.now(),
    )


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize a datetime to aware UTC.

    SQLite hands back naive values for timestamptz columns; they are stored as UTC.
    """
    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def require_utc(key: str, value: Optional[datetime]) -> Optional[datetime]:
    """Validator body shared by models: reject naive or non-UTC datetimes."""
    if value is None:
        return None
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{key} must be timezone-aware (UTC).")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{key} must be UTC (offset 0).")
    return value.astimezone(UTC)
