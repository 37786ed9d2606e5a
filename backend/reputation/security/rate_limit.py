"""Daily rating quota (anti-gaming).

Design:
- Fixed window per UTC calendar day, per user.
- Only first-time ratings on a source consume quota; resubmissions bypass it.
- The claim is a single upsert-with-increment guarded by `count < limit`, so
  concurrent first-time submissions from one user can never exceed the cap.
  It runs inside the caller's transaction, together with the rating insert.
"""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from reputation.core.errors import RateLimitExceededError
from reputation.models.user_rating_limit import UserRatingLimit


def _dialect_insert(db: Session):
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Unsupported database dialect for rating quota upsert: {name!r}")


class DailyRatingLimiter:
    """Persistent per-user daily limiter for first-time ratings."""

    def __init__(self, *, limit_per_day: int) -> None:
        if limit_per_day <= 0:
            raise ValueError("limit_per_day must be > 0.")
        self._limit = limit_per_day

    @property
    def limit(self) -> int:
        return self._limit

    def count_for_day(self, db: Session, user_id: uuid.UUID, day: date) -> int:
        """Number of first-time ratings already submitted by the user on `day`."""
        stmt = select(UserRatingLimit.rating_count).where(
            UserRatingLimit.user_id == user_id,
            UserRatingLimit.day == day,
        )
        return int(db.execute(stmt).scalar_one_or_none() or 0)

    def claim(self, db: Session, user_id: uuid.UUID, day: date) -> int:
        """Consume one unit of quota; returns the new count.

        Raises RateLimitExceededError (without writing) once the day's count has
        reached the limit.
        """
        insert = _dialect_insert(db)
        stmt = insert(UserRatingLimit).values(user_id=user_id, day=day, rating_count=1)
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserRatingLimit.user_id, UserRatingLimit.day],
            set_={"rating_count": UserRatingLimit.rating_count + 1},
            where=UserRatingLimit.rating_count < self._limit,
        ).returning(UserRatingLimit.rating_count)

        new_count = db.execute(stmt).scalar_one_or_none()
        if new_count is None:
            raise RateLimitExceededError(f"Daily rating limit reached ({self._limit} per day).")
        return int(new_count)
