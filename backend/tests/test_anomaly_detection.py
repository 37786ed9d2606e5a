from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import NOW, seed_source, seed_user
from reputation.models.rating_anomaly import AnomalyType, RatingAnomaly
from reputation.models.source_rating import SourceRating
from reputation.services.reputation_service import submit_rating
from scoring.core.anomaly import COORDINATED_WARNING, SPIKE_NOTICE, classify_rating_window
from scoring.core.policy import AnomalyPolicy


def _submit_series(db: Session, source_id, values, policy, *, start=NOW):
    results = []
    for i, v in enumerate(values):
        user = seed_user(db, f"user-{i}")
        results.append(submit_rating(db, source_id, user.id, v, now=start + timedelta(minutes=i), policy=policy))
    return results


def test_classify_below_threshold_is_none():
    assert classify_rating_window([5, 5, 5, 5], AnomalyPolicy()) is None


def test_classify_coordinated_at_eighty_percent():
    c = classify_rating_window([4, 4, 4, 4, 2], AnomalyPolicy())
    assert c is not None
    assert c.anomaly_type is AnomalyType.COORDINATED
    assert c.dominant_value == 4
    assert c.dominant_fraction == pytest.approx(0.8)


def test_classify_uniform_spread_is_spike():
    c = classify_rating_window([1, 2, 3, 4, 5], AnomalyPolicy())
    assert c is not None
    assert c.anomaly_type is AnomalyType.SPIKE
    assert c.histogram == {1: 1, 2: 1, 3: 1, 4: 1, 5: 1}


def test_classify_tie_resolves_to_lowest_value():
    c = classify_rating_window([5, 5, 1, 1, 3, 3], AnomalyPolicy())
    assert c.dominant_value == 1


def test_coordinated_pattern_flags_matching_ratings(db_session: Session, policy):
    src = seed_source(db_session)

    results = _submit_series(db_session, src.id, [4, 4, 4, 4, 2], policy)
    db_session.expire_all()

    assert all(r.success for r in results)
    assert all(r.warning is None for r in results[:4])
    assert results[4].warning == COORDINATED_WARNING

    rows = db_session.execute(select(SourceRating).where(SourceRating.source_id == src.id)).scalars().all()
    flagged = [r for r in rows if r.is_flagged]
    assert len(flagged) == 4
    assert {r.rating for r in flagged} == {4}
    assert all(r.flag_reason == "Part of coordinated pattern" for r in flagged)

    anomaly = db_session.execute(select(RatingAnomaly).where(RatingAnomaly.source_id == src.id)).scalar_one()
    assert anomaly.anomaly_type == "coordinated"
    assert len(anomaly.affected_rating_ids) == 5
    assert anomaly.details["dominantValue"] == 4
    assert anomaly.details["ratingDistribution"] == {"2": 1, "4": 4}
    assert anomaly.resolved is False


def test_spread_ratings_give_spike_notice_and_flag_nothing(db_session: Session, policy):
    src = seed_source(db_session)

    results = _submit_series(db_session, src.id, [1, 2, 3, 4, 5], policy)

    assert results[4].warning == SPIKE_NOTICE
    db_session.expire_all()
    rows = db_session.execute(select(SourceRating).where(SourceRating.source_id == src.id)).scalars().all()
    assert not any(r.is_flagged for r in rows)

    anomaly = db_session.execute(select(RatingAnomaly).where(RatingAnomaly.source_id == src.id)).scalar_one()
    assert anomaly.anomaly_type == "spike"


def test_ratings_outside_window_are_ignored(db_session: Session, policy):
    src = seed_source(db_session)

    _submit_series(db_session, src.id, [5, 5, 5], policy, start=NOW - timedelta(hours=3))
    results = _submit_series(db_session, src.id, [5, 5], policy)

    assert all(r.warning is None for r in results)
    assert db_session.execute(select(RatingAnomaly)).scalars().first() is None


def test_detection_failure_does_not_fail_submission(db_session: Session, policy, monkeypatch: pytest.MonkeyPatch):
    from reputation.services import reputation_service
    from scoring.core.errors import AnomalyDetectionError

    def boom(*args, **kwargs):
        raise AnomalyDetectionError("detector down")

    monkeypatch.setattr(reputation_service, "detect_rating_anomalies", boom)

    src = seed_source(db_session)
    user = seed_user(db_session)
    result = submit_rating(db_session, src.id, user.id, 5, now=NOW, policy=policy)

    assert result.success
    assert result.warning is None
    assert db_session.execute(select(SourceRating).where(SourceRating.source_id == src.id)).scalar_one().rating == 5


def test_commit_failure_after_detection_does_not_fail_submission(
    db_session: Session, policy, monkeypatch: pytest.MonkeyPatch
):
    from sqlalchemy.exc import OperationalError

    from reputation.models.source import Source

    src = seed_source(db_session)
    user = seed_user(db_session)

    real_commit = db_session.commit
    calls = {"n": 0}

    def flaky_commit():
        calls["n"] += 1
        # 1: rating write, 2: anomaly detection, 3: score aggregation.
        if calls["n"] == 2:
            raise OperationalError("COMMIT", {}, Exception("connection dropped"))
        real_commit()

    monkeypatch.setattr(db_session, "commit", flaky_commit)

    result = submit_rating(db_session, src.id, user.id, 5, now=NOW, policy=policy)

    assert result.success
    assert result.rating is not None and result.rating.is_update is False
    assert calls["n"] == 3
    assert db_session.get(Source, src.id, populate_existing=True).reliability_score == 80.0
