"""SourceRating model.

One row per (source, user). Resubmission updates the row in place; the unique
constraint is what resolves concurrent first-time submissions to a single row.

`weight` is a snapshot of the submitter's trust score at the last write.
Flagged rows stay in the table for review and are excluded from scoring.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Double, ForeignKey, Index, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from reputation.core.base import Base, CreatedAtMixin, UpdatedAtMixin, UUIDPrimaryKeyMixin


class SourceRating(UUIDPrimaryKeyMixin, CreatedAtMixin, UpdatedAtMixin, Base):
    __tablename__ = "source_ratings"

    source_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("sources.id", ondelete="CASCADE"), nullable=False
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    rating: Mapped[int] = mapped_column(Integer, nullable=False)

    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    weight: Mapped[float] = mapped_column(Double, nullable=False, default=1.0)

    is_flagged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    flag_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("source_id", "user_id", name="uq_source_ratings_source_user"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_source_ratings_rating_range"),
        Index("ix_source_ratings_source_id", "source_id"),
        Index("ix_source_ratings_user_id", "user_id"),
        Index("ix_source_ratings_created_at", "created_at"),
    )
