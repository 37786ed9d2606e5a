"""Reputation decay for stale sources.

Sources with no new article for `stale_days` (30) lose `points_per_step` (2)
reliability points, at most once per `cadence_days` (7):

- Flat step, not proportional to staleness; the weekly gate throttles velocity.
- Floor at `score_floor` (10): absence of content is not proof of unreliability.
- No separate cumulative counter: the floor and the weekly gate bound total
  decay. `weeks_stale` is recorded in history metadata only.

The `decay_applied_at` gate is also the claim marker. A source is claimed with
a conditional UPDATE on that column before it is touched, so two overlapping
runs never decay the same source twice.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit.core.recorder import record_reliability_change
from reputation.core.base import ensure_utc, utc_now
from reputation.models.reliability_history import ChangeReason
from reputation.models.source import Source
from scoring.core.errors import DecayError
from scoring.core.policy import DecayPolicy, ReputationPolicy, get_policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DecayDetail:
    source_id: uuid.UUID
    name: str
    old_score: float
    new_score: float
    days_since_last_article: int
    weeks_stale: int


@dataclass(slots=True)
class DecaySummary:
    processed: int = 0
    decayed: int = 0
    details: list[DecayDetail] = field(default_factory=list)
    failed: int = 0


def decay_step(current_score: float, policy: DecayPolicy) -> float:
    """New score after one decay step. Pure."""
    if current_score <= policy.score_floor:
        return current_score
    return max(policy.score_floor, current_score - policy.points_per_step)


def select_decay_candidates(db: Session, *, now: datetime, policy: DecayPolicy) -> list[uuid.UUID]:
    """Sources stale for `stale_days` and not decayed within `cadence_days`."""
    stale_before = now - timedelta(days=policy.stale_days)
    gate_before = now - timedelta(days=policy.cadence_days)
    stmt = (
        select(Source.id)
        .where(Source.last_article_at <= stale_before)
        .where(or_(Source.decay_applied_at.is_(None), Source.decay_applied_at < gate_before))
        .order_by(Source.last_article_at, Source.id)
    )
    return list(db.execute(stmt).scalars().all())


def _claim_source(db: Session, source_id: uuid.UUID, *, now: datetime, policy: DecayPolicy) -> bool:
    gate_before = now - timedelta(days=policy.cadence_days)
    result = db.execute(
        update(Source)
        .where(Source.id == source_id)
        .where(or_(Source.decay_applied_at.is_(None), Source.decay_applied_at < gate_before))
        .values(decay_applied_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _decay_one(db: Session, source_id: uuid.UUID, *, now: datetime, policy: DecayPolicy) -> Optional[DecayDetail]:
    source = db.get(Source, source_id, populate_existing=True)
    if source is None or source.last_article_at is None:
        return None

    days_since = (now - ensure_utc(source.last_article_at)).total_seconds() / 86400.0
    weeks_stale = max(0, math.floor((days_since - policy.stale_days) / policy.cadence_days))

    old_score = float(source.reliability_score)
    new_score = decay_step(old_score, policy)
    if new_score >= old_score:
        return None

    result = db.execute(
        update(Source)
        .where(Source.id == source_id, Source.reliability_score == old_score)
        .values(reliability_score=new_score)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise DecayError(f"Score of source {source_id} changed during decay; step skipped.")
    db.expire(source, ["reliability_score"])

    record_reliability_change(
        db,
        source_id=source_id,
        old_score=old_score,
        new_score=new_score,
        reason=ChangeReason.DECAY,
        metadata={
            "daysSinceLastArticle": round(days_since),
            "weeksStale": weeks_stale,
            "decayApplied": old_score - new_score,
        },
        changed_at=now,
    )
    return DecayDetail(
        source_id=source_id,
        name=source.name,
        old_score=old_score,
        new_score=new_score,
        days_since_last_article=round(days_since),
        weeks_stale=weeks_stale,
    )


def apply_reputation_decay(
    db: Session,
    *,
    now: Optional[datetime] = None,
    policy: Optional[ReputationPolicy] = None,
) -> DecaySummary:
    """Decay every eligible source; commits per source.

    A failure on one source is logged and the run continues.
    """
    policy = policy or get_policy()
    now = now or utc_now()
    summary = DecaySummary()

    for source_id in select_decay_candidates(db, now=now, policy=policy.decay):
        try:
            if not _claim_source(db, source_id, now=now, policy=policy.decay):
                # Claimed by an overlapping run.
                db.rollback()
                continue
            summary.processed += 1
            detail = _decay_one(db, source_id, now=now, policy=policy.decay)
            db.commit()
        except (SQLAlchemyError, DecayError) as e:
            db.rollback()
            summary.failed += 1
            logger.error("decay failed source=%s error_type=%s: %s", source_id, type(e).__name__, e)
            continue

        if detail is not None:
            summary.decayed += 1
            summary.details.append(detail)

    logger.info(
        "decay run processed=%d decayed=%d failed=%d", summary.processed, summary.decayed, summary.failed
    )
    return summary
