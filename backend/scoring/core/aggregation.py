"""Reliability score aggregation.

Blends three components into one 0-100 reliability score:

- ratings: weighted mean of non-flagged crowd ratings, rescaled 1..5 -> 20..100
- accuracy: share of cross-reference verdicts that were accurate, 0..100
- prior: the source's current score (always present)

Fixed policy weights (0.3 / 0.5 / 0.2 by default) are renormalized over the
components that are present. Automated verification outweighs crowd ratings,
and the prior-score anchor gives inertia against one-off swings (exponential
smoothing without storing a time series).

Recomputation reads the current row set only, so running it twice in quick
succession is harmless: the second run computes from the same inputs and is a
no-op under the min-change rule.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, case, func, select, update
from sqlalchemy.orm import Session

from audit.core.recorder import record_reliability_change
from reputation.core.base import utc_now
from reputation.models.cross_reference_result import CrossReferenceResult
from reputation.models.reliability_history import ChangeReason
from reputation.models.source import Source
from reputation.models.source_rating import SourceRating
from scoring.core.errors import PersistenceError
from scoring.core.policy import AggregationPolicy, ReputationPolicy, get_policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScoreInputs:
    """Everything the blend needs, read from the current row set."""

    weighted_rating_sum: float
    rating_weight_sum: float
    rating_count: int
    accurate_claims: int
    total_claims: int


@dataclass(frozen=True, slots=True)
class ScoreUpdate:
    source_id: uuid.UUID
    old_score: float
    new_score: float
    reason: ChangeReason


def round_half_up(value: float, digits: int) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def rating_component(inputs: ScoreInputs, policy: AggregationPolicy) -> Optional[float]:
    """Weighted mean rating on the 0-100 scale, or None when absent."""
    if inputs.rating_count <= 0 or inputs.rating_weight_sum <= 0:
        return None
    return (inputs.weighted_rating_sum / inputs.rating_weight_sum) * policy.rating_scale


def accuracy_component(inputs: ScoreInputs) -> Optional[float]:
    """Cross-reference accuracy on the 0-100 scale, or None when absent."""
    if inputs.total_claims <= 0:
        return None
    return inputs.accurate_claims / inputs.total_claims * 100.0


def blend_reliability_score(inputs: ScoreInputs, current_score: float, policy: AggregationPolicy) -> float:
    """Pure blend: present components, renormalized weights, rounded and clamped."""
    weighted = current_score * policy.weight_current_score
    total_weight = policy.weight_current_score

    ratings = rating_component(inputs, policy)
    if ratings is not None:
        weighted += ratings * policy.weight_user_ratings
        total_weight += policy.weight_user_ratings

    accuracy = accuracy_component(inputs)
    if accuracy is not None:
        weighted += accuracy * policy.weight_cross_reference
        total_weight += policy.weight_cross_reference

    score = round_half_up(weighted / total_weight, 1)
    return max(policy.score_min, min(policy.score_max, score))


def gather_score_inputs(db: Session, source_id: uuid.UUID) -> ScoreInputs:
    """Read the current non-flagged ratings and all cross-reference verdicts."""
    rating_stmt = select(
        func.coalesce(func.sum(SourceRating.rating * SourceRating.weight), 0.0),
        func.coalesce(func.sum(SourceRating.weight), 0.0),
        func.count(SourceRating.id),
    ).where(
        SourceRating.source_id == source_id,
        SourceRating.is_flagged.is_(False),
    )
    weighted_sum, weight_sum, rating_count = db.execute(rating_stmt).one()

    accurate = func.sum(case((CrossReferenceResult.was_accurate.is_(True), 1), else_=0), type_=Integer)
    claims_stmt = select(
        func.count(CrossReferenceResult.id),
        func.coalesce(accurate, 0),
    ).where(CrossReferenceResult.source_id == source_id)
    total_claims, accurate_claims = db.execute(claims_stmt).one()

    return ScoreInputs(
        weighted_rating_sum=float(weighted_sum or 0.0),
        rating_weight_sum=float(weight_sum or 0.0),
        rating_count=int(rating_count or 0),
        accurate_claims=int(accurate_claims or 0),
        total_claims=int(total_claims or 0),
    )


def recompute_source_score(
    db: Session,
    source_id: uuid.UUID,
    *,
    reason: ChangeReason = ChangeReason.USER_RATING,
    now: Optional[datetime] = None,
    policy: Optional[ReputationPolicy] = None,
) -> Optional[ScoreUpdate]:
    """Recompute and persist a source's reliability score.

    Score write and history append share the caller's transaction (no commit
    here). The write is a compare-and-swap on the score read at the start;
    losing it raises PersistenceError rather than overwriting a concurrent result.

    Returns None when the source is unknown or the change is within noise.
    """
    policy = policy or get_policy()
    agg = policy.aggregation

    source = db.get(Source, source_id, populate_existing=True)
    if source is None:
        return None

    old_score = float(source.reliability_score)
    inputs = gather_score_inputs(db, source_id)
    new_score = blend_reliability_score(inputs, old_score, agg)

    if abs(new_score - old_score) <= agg.min_change:
        return None

    result = db.execute(
        update(Source)
        .where(Source.id == source_id, Source.reliability_score == old_score)
        .values(reliability_score=new_score)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise PersistenceError(f"Concurrent score update detected for source {source_id}; score not written.")
    # Keep the identity map in step with the conditional UPDATE.
    db.expire(source, ["reliability_score"])

    record_reliability_change(
        db,
        source_id=source_id,
        old_score=old_score,
        new_score=new_score,
        reason=reason,
        metadata={
            "ratingCount": inputs.rating_count,
            "accuracyClaims": inputs.total_claims,
            "trigger": reason.value,
        },
        changed_at=now or utc_now(),
    )
    logger.info("reliability score source=%s %.1f -> %.1f (%s)", source_id, old_score, new_score, reason.value)
    return ScoreUpdate(source_id=source_id, old_score=old_score, new_score=new_score, reason=reason)
