"""User model (reputation-relevant fields only).

`trust_score` is the multiplier snapshotted into each rating as its weight.
It starts at the policy's `new_user_trust_score` and changes only through the
trust feedback loop.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import CheckConstraint, Double, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from reputation.core.base import Base, CreatedAtMixin, UUIDPrimaryKeyMixin


def _new_user_trust_score() -> float:
    # scoring.core imports the models; resolve the policy at insert time.
    from scoring.core.policy import get_policy

    return get_policy().trust.new_user_trust_score


class User(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    __tablename__ = "users"

    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    trust_score: Mapped[float] = mapped_column(Double, nullable=False, default=_new_user_trust_score)

    total_ratings_given: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    accurate_ratings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("trust_score >= 0.1 AND trust_score <= 3.0", name="ck_users_trust_score_range"),
        CheckConstraint("total_ratings_given >= 0", name="ck_users_total_ratings_given_nonneg"),
        CheckConstraint("accurate_ratings >= 0", name="ck_users_accurate_ratings_nonneg"),
    )
