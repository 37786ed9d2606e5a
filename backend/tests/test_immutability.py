from __future__ import annotations

import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import NOW, seed_source, seed_user
from reputation.models.cross_reference_result import CrossReferenceImmutabilityError, CrossReferenceResult
from reputation.models.rating_anomaly import RatingAnomaly, RatingAnomalyMutationError
from reputation.models.reliability_history import ReliabilityHistory, ReliabilityHistoryImmutabilityError
from reputation.services.reputation_service import record_cross_reference, resolve_anomaly, submit_rating


def _coordinated_anomaly(db: Session, policy) -> RatingAnomaly:
    src = seed_source(db)
    for i, v in enumerate([3, 3, 3, 3, 3]):
        user = seed_user(db, f"u{i}")
        submit_rating(db, src.id, user.id, v, now=NOW, policy=policy)
    return db.execute(select(RatingAnomaly).where(RatingAnomaly.source_id == src.id)).scalar_one()


def test_reliability_history_cannot_be_updated(db_session: Session, policy):
    src = seed_source(db_session)
    user = seed_user(db_session)
    submit_rating(db_session, src.id, user.id, 5, now=NOW, policy=policy)

    entry = db_session.execute(select(ReliabilityHistory)).scalar_one()
    entry.new_score = 99.0
    with pytest.raises(ReliabilityHistoryImmutabilityError):
        db_session.flush()
    db_session.rollback()


def test_reliability_history_cannot_be_deleted(db_session: Session, policy):
    src = seed_source(db_session)
    user = seed_user(db_session)
    submit_rating(db_session, src.id, user.id, 5, now=NOW, policy=policy)

    entry = db_session.execute(select(ReliabilityHistory)).scalar_one()
    db_session.delete(entry)
    with pytest.raises(ReliabilityHistoryImmutabilityError):
        db_session.flush()
    db_session.rollback()


def test_cross_reference_results_are_append_only(db_session: Session, policy):
    src = seed_source(db_session)
    record_cross_reference(db_session, src.id, uuid.uuid4(), True, "desk", now=NOW, policy=policy)

    row = db_session.execute(select(CrossReferenceResult)).scalar_one()
    row.was_accurate = False
    with pytest.raises(CrossReferenceImmutabilityError):
        db_session.flush()
    db_session.rollback()

    db_session.delete(row)
    with pytest.raises(CrossReferenceImmutabilityError):
        db_session.flush()
    db_session.rollback()


def test_anomaly_detection_fields_are_immutable(db_session: Session, policy):
    anomaly = _coordinated_anomaly(db_session, policy)

    anomaly.details = {"recentCount": 1}
    with pytest.raises(RatingAnomalyMutationError):
        db_session.flush()
    db_session.rollback()


def test_anomaly_can_be_resolved_once(db_session: Session, policy):
    anomaly = _coordinated_anomaly(db_session, policy)

    resolved = resolve_anomaly(db_session, anomaly.id, "confirmed brigading")
    assert resolved is not None
    assert resolved.resolved is True
    assert resolved.resolution_action == "confirmed brigading"

    with pytest.raises(RatingAnomalyMutationError):
        resolve_anomaly(db_session, anomaly.id, "changed my mind")

    assert resolve_anomaly(db_session, uuid.uuid4(), "n/a") is None


def test_anomalies_cannot_be_deleted(db_session: Session, policy):
    anomaly = _coordinated_anomaly(db_session, policy)

    db_session.delete(anomaly)
    with pytest.raises(RatingAnomalyMutationError):
        db_session.flush()
    db_session.rollback()
