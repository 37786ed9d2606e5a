"""Rating anomaly detection.

Runs after every successful rating write for the affected source.

Rules (precision over recall):
1. Look at all ratings for the source created within the window (1h).
2. Fewer than `min_ratings` (5) in the window -> nothing to report.
3. If one rating value holds >= `coordinated_fraction` (80%) of the window,
   classify COORDINATED and flag every window rating with that value.
   Flagged ratings are excluded from scoring until a reviewer unflags them.
4. Otherwise classify SPIKE: record it, flag nothing.

Every classification appends a RatingAnomaly record. Flags are reversible;
nothing is deleted.

Detection is by value concentration only. Accounts that coordinate with
varied values are not caught here.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reputation.core.base import utc_now
from reputation.models.rating_anomaly import AnomalyType, RatingAnomaly
from reputation.models.source_rating import SourceRating
from scoring.core.errors import AnomalyDetectionError
from scoring.core.policy import AnomalyPolicy, ReputationPolicy, get_policy

logger = logging.getLogger(__name__)


COORDINATED_WARNING = "Warning: Coordinated rating pattern detected. Some ratings have been flagged for review."
SPIKE_NOTICE = "Notice: Unusual rating activity detected for this source."


@dataclass(frozen=True, slots=True)
class WindowClassification:
    anomaly_type: AnomalyType
    histogram: dict[int, int]
    dominant_value: int
    dominant_fraction: float


@dataclass(frozen=True, slots=True)
class AnomalyFinding:
    anomaly_id: uuid.UUID
    anomaly_type: AnomalyType
    affected_rating_ids: list[uuid.UUID]
    flagged_rating_ids: list[uuid.UUID]
    warning: str


def classify_rating_window(values: Sequence[int], policy: AnomalyPolicy) -> Optional[WindowClassification]:
    """Classify the ratings of one window. Pure; None when below threshold."""
    count = len(values)
    if count < policy.min_ratings:
        return None

    histogram = Counter(int(v) for v in values)
    # Ties resolve to the lowest value for determinism.
    dominant_value, dominant_count = min(histogram.items(), key=lambda kv: (-kv[1], kv[0]))
    dominant_fraction = dominant_count / count

    anomaly_type = (
        AnomalyType.COORDINATED if dominant_fraction >= policy.coordinated_fraction else AnomalyType.SPIKE
    )
    return WindowClassification(
        anomaly_type=anomaly_type,
        histogram=dict(sorted(histogram.items())),
        dominant_value=dominant_value,
        dominant_fraction=dominant_fraction,
    )


def detect_rating_anomalies(
    db: Session,
    source_id: uuid.UUID,
    *,
    now: Optional[datetime] = None,
    policy: Optional[ReputationPolicy] = None,
) -> Optional[AnomalyFinding]:
    """Inspect the recent window for a source; record and flag as needed.

    Writes join the caller's transaction (no commit here). Database failures
    are wrapped in AnomalyDetectionError so the caller can contain them.
    """
    policy = policy or get_policy()
    now = now or utc_now()
    window_start = now - timedelta(minutes=policy.anomaly.window_minutes)

    try:
        stmt = (
            select(SourceRating.id, SourceRating.rating)
            .where(SourceRating.source_id == source_id, SourceRating.created_at >= window_start)
            .order_by(SourceRating.created_at, SourceRating.id)
        )
        recent = db.execute(stmt).all()

        classification = classify_rating_window([r.rating for r in recent], policy.anomaly)
        if classification is None:
            return None

        affected_ids = [r.id for r in recent]
        anomaly = RatingAnomaly(
            source_id=source_id,
            anomaly_type=classification.anomaly_type.value,
            details={
                "recentCount": len(recent),
                "ratingDistribution": {str(k): v for k, v in classification.histogram.items()},
                "dominantValue": classification.dominant_value,
                "dominantFraction": round(classification.dominant_fraction, 4),
                "windowMinutes": policy.anomaly.window_minutes,
            },
            affected_rating_ids=[str(i) for i in affected_ids],
            detected_at=now,
        )
        db.add(anomaly)
        db.flush()

        flagged_ids: list[uuid.UUID] = []
        if classification.anomaly_type is AnomalyType.COORDINATED:
            flagged_ids = [r.id for r in recent if r.rating == classification.dominant_value]
            db.execute(
                update(SourceRating)
                .where(SourceRating.id.in_(flagged_ids))
                .values(is_flagged=True, flag_reason=f"Part of {AnomalyType.COORDINATED.value} pattern")
                .execution_options(synchronize_session="fetch")
            )
            warning = COORDINATED_WARNING
        else:
            warning = SPIKE_NOTICE
    except SQLAlchemyError as e:
        raise AnomalyDetectionError(f"Anomaly detection failed for source {source_id}") from e

    logger.warning(
        "rating anomaly source=%s type=%s recent=%d flagged=%d",
        source_id,
        classification.anomaly_type.value,
        len(affected_ids),
        len(flagged_ids),
    )
    return AnomalyFinding(
        anomaly_id=anomaly.id,
        anomaly_type=classification.anomaly_type,
        affected_rating_ids=affected_ids,
        flagged_rating_ids=flagged_ids,
        warning=warning,
    )
