"""Source model.

An information source whose reliability is scored by the engine.

- `reliability_score` is continuous in [0, 100]; mutated only by score
  aggregation and the decay job.
- `decay_applied_at` doubles as the weekly decay claim marker.
- Sources are never deleted by the reputation engine.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Double, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from reputation.core.base import Base, CreatedAtMixin, UUIDPrimaryKeyMixin, require_utc


DEFAULT_RELIABILITY_SCORE = 50.0


class Source(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """Scored information source."""

    __tablename__ = "sources"

    name: Mapped[str] = mapped_column(Text, nullable=False)

    reliability_score: Mapped[float] = mapped_column(
        Double, nullable=False, default=DEFAULT_RELIABILITY_SCORE
    )

    last_article_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    decay_applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "reliability_score >= 0 AND reliability_score <= 100",
            name="ck_sources_reliability_score_range",
        ),
        Index("ix_sources_last_article_at", "last_article_at"),
    )

    @validates("last_article_at", "decay_applied_at")
    def _validate_utc(self, key: str, value: Optional[datetime]) -> Optional[datetime]:
        """Enforce timezone-aware UTC datetimes for audit correctness."""
        return require_utc(key, value)
