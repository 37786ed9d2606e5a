from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest
from sqlalchemy import update
from sqlalchemy.orm import Session

from audit.checks import history_chain_check, score_bounds_check
from audit.job import run_reputation_audit
from audit.job.run_reputation_audit import run_audit
from conftest import NOW, seed_source, seed_user
from reputation.models.reliability_history import ChangeReason, ReliabilityHistory
from reputation.models.source import Source
from reputation.services.reputation_service import submit_rating


def _rated_source(db: Session, policy) -> Source:
    src = seed_source(db)
    for i, v in enumerate([5, 3]):
        user = seed_user(db, f"u{i}")
        submit_rating(db, src.id, user.id, v, now=NOW + timedelta(minutes=i), policy=policy)
    return src


def test_clean_ledger_is_ok(db_session: Session, policy):
    _rated_source(db_session, policy)

    report = run_audit(db_session, now=NOW, policy=policy)

    assert report["overall_status"] == "OK"
    assert [c["name"] for c in report["checks"]] == ["score_bounds_check", "history_chain_check"]
    chain = report["checks"][1]["details"]
    assert chain["sources_checked"] == 1
    assert report["warnings"] == []


def test_score_written_outside_the_recorder_is_critical(db_session: Session, policy):
    src = _rated_source(db_session, policy)
    db_session.execute(update(Source).where(Source.id == src.id).values(reliability_score=12.0))
    db_session.commit()

    status, details = history_chain_check.run(db_session, tolerance=policy.aggregation.min_change)

    assert status == "CRITICAL"
    assert details["tip_mismatch_sources"] == [str(src.id)]


def test_broken_link_is_degraded(db_session: Session, policy):
    src = _rated_source(db_session, policy)
    tip = db_session.get(Source, src.id, populate_existing=True).reliability_score
    db_session.add(
        ReliabilityHistory(
            source_id=src.id,
            old_score=tip - 7.0,
            new_score=tip,
            change_reason=ChangeReason.USER_RATING.value,
            change_metadata={},
            changed_at=NOW + timedelta(hours=1),
        )
    )
    db_session.commit()

    status, details = history_chain_check.run(db_session)

    assert status == "DEGRADED"
    assert details["broken_chain_sources"] == [str(src.id)]
    assert details["tip_mismatch_sources"] == []


def test_same_timestamp_entries_are_linked_by_score():
    a = ReliabilityHistory(old_score=50.0, new_score=60.0, change_reason="decay", changed_at=NOW)
    b = ReliabilityHistory(old_score=60.0, new_score=70.0, change_reason="decay", changed_at=NOW)

    chain = history_chain_check.order_chain([b, a])

    assert chain == [a, b]
    assert history_chain_check.find_breaks(chain, 70.0) == (0, False)


def test_scores_outside_policy_bounds_are_critical(db_session: Session, policy):
    seed_source(db_session, score=80.0)
    narrow = policy.model_copy(update={"aggregation": policy.aggregation.model_copy(update={"score_max": 60.0})})

    status, details = score_bounds_check.run(db_session, policy=narrow)

    assert status == "CRITICAL"
    assert details["sources_out_of_range"] == 1


def test_over_accurate_user_is_degraded(db_session: Session, policy):
    seed_user(db_session, total_ratings_given=1, accurate_ratings=3)

    status, details = score_bounds_check.run(db_session, policy=policy)

    assert status == "DEGRADED"
    assert details["users_over_accurate"] == 1


def test_audit_refuses_dirty_session(db_session: Session, policy):
    db_session.add(Source(name="pending"))
    with pytest.raises(RuntimeError):
        run_audit(db_session, now=NOW, policy=policy)
    db_session.rollback()


def test_audit_job_writes_report(
    db_session: Session, session_factory, policy, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
):
    _rated_source(db_session, policy)
    monkeypatch.setattr(run_reputation_audit, "open_session", session_factory)
    monkeypatch.setattr(run_reputation_audit, "get_policy", lambda: policy)
    out = tmp_path / "audit.json"

    assert run_reputation_audit.main(["--out", str(out)]) == 0

    report = json.loads(out.read_text(encoding="utf-8"))
    assert report["overall_status"] == "OK"


def test_audit_job_exit_code_on_critical(
    db_session: Session, session_factory, policy, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
):
    src = _rated_source(db_session, policy)
    db_session.execute(update(Source).where(Source.id == src.id).values(reliability_score=12.0))
    db_session.commit()
    monkeypatch.setattr(run_reputation_audit, "open_session", session_factory)
    monkeypatch.setattr(run_reputation_audit, "get_policy", lambda: policy)

    assert run_reputation_audit.main(["--out", str(tmp_path / "audit.json")]) == 2
