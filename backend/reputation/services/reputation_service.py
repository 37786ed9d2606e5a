"""Reputation engine write paths.

Rating submission flow (all synchronous, in order):
1. validate input, resolve source and user (no writes on rejection)
2. insert or update the (source, user) rating; first-time ratings consume one
   unit of daily quota in the same transaction -> commit
3. anomaly detection (best-effort, own transaction; failures are logged and
   never roll back the rating)
4. score aggregation + history append (own transaction; failures propagate)

Rejections (invalid rating, unknown ids, quota) come back as a structured
RatingResult. Persistence failures propagate; nothing here retries a call.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from reputation.core.base import utc_now
from reputation.core.errors import InvalidRatingError, NotFoundError, RatingError, RatingErrorCode
from reputation.models.cross_reference_result import CrossReferenceResult
from reputation.models.rating_anomaly import RatingAnomaly, RatingAnomalyMutationError
from reputation.models.reliability_history import ChangeReason
from reputation.models.source import Source
from reputation.models.source_rating import SourceRating
from reputation.models.user import User
from reputation.security.rate_limit import DailyRatingLimiter
from scoring.core.aggregation import ScoreUpdate, recompute_source_score
from scoring.core.anomaly import AnomalyFinding, detect_rating_anomalies
from scoring.core.errors import AnomalyDetectionError
from scoring.core.policy import ReputationPolicy, get_policy
from scoring.core.trust import clamp_trust, record_rating_adjudication


logger = logging.getLogger("reputation.engine")

IdLike = Union[uuid.UUID, str]


def _log(event: dict) -> None:
    logger.info(json.dumps(event, ensure_ascii=False, default=str))


@dataclass(frozen=True, slots=True)
class RatingOutcome:
    id: uuid.UUID
    rating: int
    weight: float
    is_update: bool


@dataclass(frozen=True, slots=True)
class RatingResult:
    success: bool
    rating: Optional[RatingOutcome] = None
    error: Optional[RatingErrorCode] = None
    message: Optional[str] = None
    warning: Optional[str] = None


def _as_uuid(value: IdLike, what: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as e:
        raise NotFoundError(f"{what} not found") from e


def validate_rating_value(rating: Any, policy: ReputationPolicy) -> int:
    # bool is an int subclass.
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidRatingError(
            f"Rating must be an integer between {policy.rating.min_value} and {policy.rating.max_value}"
        )
    if not policy.rating.min_value <= rating <= policy.rating.max_value:
        raise InvalidRatingError(
            f"Rating must be an integer between {policy.rating.min_value} and {policy.rating.max_value}"
        )
    return rating


def _find_rating(db: Session, source_id: uuid.UUID, user_id: uuid.UUID) -> Optional[SourceRating]:
    stmt = (
        select(SourceRating)
        .where(SourceRating.source_id == source_id, SourceRating.user_id == user_id)
        .with_for_update()
    )
    return db.execute(stmt).scalars().first()


def _update_rating(
    existing: SourceRating, *, rating: int, comment: Optional[str], weight: float, now: datetime
) -> SourceRating:
    existing.rating = rating
    existing.comment = comment or None
    existing.weight = weight
    existing.updated_at = now
    return existing


def _write_rating(
    db: Session,
    *,
    source_id: uuid.UUID,
    user: User,
    rating: int,
    comment: Optional[str],
    now: datetime,
    policy: ReputationPolicy,
) -> tuple[SourceRating, bool]:
    """Insert or update the rating row and commit. Returns (row, is_update)."""
    # Weight is always a fresh snapshot of the submitter's current trust.
    weight = clamp_trust(user.trust_score, policy.trust)

    existing = _find_rating(db, source_id, user.id)
    if existing is not None:
        row = _update_rating(existing, rating=rating, comment=comment, weight=weight, now=now)
        db.commit()
        return row, True

    limiter = DailyRatingLimiter(limit_per_day=policy.rating.max_new_ratings_per_day)
    limiter.claim(db, user.id, now.date())
    row = SourceRating(
        source_id=source_id,
        user_id=user.id,
        rating=rating,
        comment=comment or None,
        weight=weight,
        is_flagged=False,
        created_at=now,
        updated_at=now,
    )
    db.add(row)
    user.total_ratings_given = User.total_ratings_given + 1
    try:
        db.commit()
    except IntegrityError:
        # A concurrent first-time submission for the same pair won the insert.
        # Rolling back also releases the quota claimed above; this call
        # resolves to an update of the winning row (last writer wins).
        db.rollback()
        existing = _find_rating(db, source_id, user.id)
        if existing is None:
            raise
        row = _update_rating(existing, rating=rating, comment=comment, weight=weight, now=now)
        db.commit()
        return row, True

    return row, False


def _detect_anomalies_best_effort(
    db: Session, source_id: uuid.UUID, *, now: datetime, policy: ReputationPolicy
) -> Optional[AnomalyFinding]:
    try:
        finding = detect_rating_anomalies(db, source_id, now=now, policy=policy)
        db.commit()
        return finding
    except (AnomalyDetectionError, SQLAlchemyError) as e:
        # The rating is already committed; detection never fails the submission.
        db.rollback()
        _log(
            {"event": "anomaly_detection_failed", "source_id": source_id, "error_type": type(e.__cause__ or e).__name__}
        )
        return None


def submit_rating(
    db: Session,
    source_id: IdLike,
    user_id: IdLike,
    rating: Any,
    comment: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
    policy: Optional[ReputationPolicy] = None,
) -> RatingResult:
    """Submit or update a user's rating for a source."""
    policy = policy or get_policy()
    now = now or utc_now()

    try:
        value = validate_rating_value(rating, policy)
        sid = _as_uuid(source_id, "Source")
        uid = _as_uuid(user_id, "User")
        if db.get(Source, sid) is None:
            raise NotFoundError("Source not found")
        user = db.get(User, uid)
        if user is None:
            raise NotFoundError("User not found")

        row, is_update = _write_rating(
            db, source_id=sid, user=user, rating=value, comment=comment, now=now, policy=policy
        )
    except RatingError as e:
        db.rollback()
        _log({"event": "rating_rejected", "source_id": source_id, "user_id": user_id, "error": e.code.value})
        return RatingResult(success=False, error=e.code, message=str(e))

    outcome = RatingOutcome(id=row.id, rating=row.rating, weight=row.weight, is_update=is_update)
    _log(
        {
            "event": "rating_submitted",
            "source_id": sid,
            "user_id": uid,
            "rating_id": row.id,
            "is_update": is_update,
            "weight": row.weight,
        }
    )

    finding = _detect_anomalies_best_effort(db, sid, now=now, policy=policy)

    recompute_source_score(db, sid, reason=ChangeReason.USER_RATING, now=now, policy=policy)
    db.commit()

    return RatingResult(success=True, rating=outcome, warning=finding.warning if finding else None)


def record_cross_reference(
    db: Session,
    source_id: IdLike,
    content_id: IdLike,
    was_accurate: bool,
    verification_source: Optional[str],
    confidence: float = 0.5,
    claim_id: Optional[IdLike] = None,
    *,
    now: Optional[datetime] = None,
    policy: Optional[ReputationPolicy] = None,
) -> Optional[ScoreUpdate]:
    """Append an external verification verdict and re-aggregate the source."""
    now = now or utc_now()
    sid = _as_uuid(source_id, "Source")
    if db.get(Source, sid) is None:
        raise NotFoundError("Source not found")

    db.add(
        CrossReferenceResult(
            source_id=sid,
            content_id=_as_uuid(content_id, "Content"),
            claim_id=_as_uuid(claim_id, "Claim") if claim_id is not None else None,
            was_accurate=bool(was_accurate),
            verification_source=verification_source,
            confidence=max(0.0, min(1.0, float(confidence))),
            verified_at=now,
        )
    )
    db.flush()
    update = recompute_source_score(db, sid, reason=ChangeReason.CROSS_REFERENCE, now=now, policy=policy)
    db.commit()
    _log({"event": "cross_reference_recorded", "source_id": sid, "was_accurate": bool(was_accurate)})
    return update


def record_new_article(db: Session, source_id: IdLike, *, now: Optional[datetime] = None) -> bool:
    """Mark fresh content for a source (resets its staleness clock)."""
    source = db.get(Source, _as_uuid(source_id, "Source"))
    if source is None:
        return False
    source.last_article_at = now or utc_now()
    db.commit()
    return True


def unflag_rating(
    db: Session,
    rating_id: IdLike,
    *,
    now: Optional[datetime] = None,
    policy: Optional[ReputationPolicy] = None,
) -> Optional[SourceRating]:
    """Reinstate a flagged rating after review and re-aggregate its source."""
    row = db.get(SourceRating, _as_uuid(rating_id, "Rating"))
    if row is None:
        return None
    if not row.is_flagged:
        return row

    row.is_flagged = False
    row.flag_reason = None
    db.flush()
    recompute_source_score(db, row.source_id, reason=ChangeReason.ANOMALY_CORRECTION, now=now, policy=policy)
    db.commit()
    _log({"event": "rating_unflagged", "rating_id": row.id, "source_id": row.source_id})
    return row


def resolve_anomaly(db: Session, anomaly_id: IdLike, action: str) -> Optional[RatingAnomaly]:
    """Mark an anomaly record reviewed (once)."""
    anomaly = db.get(RatingAnomaly, _as_uuid(anomaly_id, "Anomaly"))
    if anomaly is None:
        return None
    if anomaly.resolved:
        raise RatingAnomalyMutationError(f"Anomaly {anomaly.id} is already resolved.")
    anomaly.resolved = True
    anomaly.resolution_action = action
    db.commit()
    _log({"event": "anomaly_resolved", "anomaly_id": anomaly.id, "action": action})
    return anomaly


def adjudicate_rating(
    db: Session,
    user_id: IdLike,
    accurate: bool,
    *,
    policy: Optional[ReputationPolicy] = None,
) -> Optional[User]:
    """Apply one claim adjudication to a user's accuracy record and trust score."""
    uid = _as_uuid(user_id, "User")
    user = db.get(User, uid)
    if user is None:
        return None

    trust = record_rating_adjudication(db, uid, accurate=accurate, policy=policy)
    db.commit()
    _log({"event": "rating_adjudicated", "user_id": uid, "accurate": bool(accurate), "trust_score": trust})
    return user
