"""UserRatingLimit model: per (user, UTC calendar day) count of first-time ratings."""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import Date, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from reputation.core.base import Base, UUIDPrimaryKeyMixin


class UserRatingLimit(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "user_rating_limits"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    day: Mapped[date] = mapped_column(Date, nullable=False)

    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # The upsert-with-increment in the rate limiter targets this constraint.
    __table_args__ = (UniqueConstraint("user_id", "day", name="uq_user_rating_limits_user_day"),)
