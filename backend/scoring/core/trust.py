"""User trust feedback loop.

A user's trust score is the weight multiplier snapshotted into their ratings.
It tracks the share of their past ratings later adjudicated accurate:

    trust = MIN + (MAX - MIN) * accurate_ratings / total_ratings_given

clamped to [MIN, MAX] and rounded to 2 decimals. Users without ratings keep
their current score. Stored weights on existing ratings are never rewritten;
the new trust applies the next time the user writes a rating.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from reputation.models.user import User
from scoring.core.aggregation import round_half_up
from scoring.core.policy import ReputationPolicy, TrustPolicy, get_policy

logger = logging.getLogger(__name__)


def clamp_trust(value: float, policy: TrustPolicy) -> float:
    return max(policy.min_trust_score, min(policy.max_trust_score, float(value)))


def compute_trust_score(accurate_ratings: int, total_ratings_given: int, policy: TrustPolicy) -> Optional[float]:
    """Trust from the accuracy ratio; None when the user has no ratings."""
    if total_ratings_given <= 0:
        return None
    ratio = accurate_ratings / total_ratings_given
    raw = policy.min_trust_score + (policy.max_trust_score - policy.min_trust_score) * ratio
    return round_half_up(clamp_trust(raw, policy), 2)


def update_user_trust_score(
    db: Session,
    user_id: uuid.UUID,
    *,
    policy: Optional[ReputationPolicy] = None,
) -> Optional[float]:
    """Recompute and store a user's trust score.

    Returns the trust score, or None for an unknown user or one without ratings.
    """
    policy = policy or get_policy()

    user = db.get(User, user_id)
    if user is None:
        return None

    new_trust = compute_trust_score(user.accurate_ratings, user.total_ratings_given, policy.trust)
    if new_trust is None:
        return None

    if new_trust != user.trust_score:
        logger.info("trust score user=%s %.2f -> %.2f", user_id, user.trust_score, new_trust)
        user.trust_score = new_trust
    return new_trust


def record_rating_adjudication(
    db: Session,
    user_id: uuid.UUID,
    *,
    accurate: bool,
    policy: Optional[ReputationPolicy] = None,
) -> Optional[float]:
    """Register the outcome of one adjudicated rating, then rerun the trust loop.

    `accurate_ratings` never exceeds `total_ratings_given`.
    """
    user = db.get(User, user_id)
    if user is None:
        return None

    if accurate and user.accurate_ratings < user.total_ratings_given:
        user.accurate_ratings = user.accurate_ratings + 1
    db.flush()
    return update_user_trust_score(db, user_id, policy=policy)
