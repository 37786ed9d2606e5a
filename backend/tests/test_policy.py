from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError
from sqlalchemy.orm import Session

from reputation.models.user import User
from scoring.core.policy import DEFAULT_POLICY_PATH, POLICY_PATH_ENV, ReputationPolicy, get_policy, load_policy


def test_bundled_policy_matches_documented_defaults():
    p = load_policy(DEFAULT_POLICY_PATH)

    assert p.rating.max_new_ratings_per_day == 20
    assert (p.trust.min_trust_score, p.trust.max_trust_score, p.trust.new_user_trust_score) == (0.1, 3.0, 1.0)
    assert (p.anomaly.window_minutes, p.anomaly.min_ratings, p.anomaly.coordinated_fraction) == (60, 5, 0.8)
    assert (
        p.aggregation.weight_user_ratings,
        p.aggregation.weight_cross_reference,
        p.aggregation.weight_current_score,
    ) == (0.3, 0.5, 0.2)
    assert p.aggregation.min_change == 0.1
    assert (p.decay.stale_days, p.decay.cadence_days, p.decay.points_per_step) == (30, 7, 2.0)
    assert p.decay.score_floor == 10.0
    assert p.reputation.recent_ratings == 5
    assert p == ReputationPolicy()


def test_env_var_overrides_policy_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    f = tmp_path / "policy.yaml"
    f.write_text("rating:\n  max_new_ratings_per_day: 3\ndecay:\n  score_floor: 5\n", encoding="utf-8")
    monkeypatch.setenv(POLICY_PATH_ENV, str(f))

    p = load_policy()

    assert p.rating.max_new_ratings_per_day == 3
    assert p.decay.score_floor == 5.0
    # Unspecified sections keep their defaults.
    assert p.anomaly.min_ratings == 5


def test_empty_file_yields_defaults(tmp_path: Path):
    f = tmp_path / "empty.yaml"
    f.write_text("", encoding="utf-8")
    assert load_policy(f) == ReputationPolicy()


@pytest.mark.parametrize(
    "body",
    [
        "aggregation:\n  weight_user_ratings: -0.1\n",
        "aggregation:\n  weight_current_score: 0\n",
        "trust:\n  min_trust_score: 2.0\n  max_trust_score: 1.0\n",
        "trust:\n  max_trust_score: 4.0\n",
        "trust:\n  min_trust_score: 0.05\n",
        "decay:\n  score_floor: 150\n",
        "rating:\n  unknown_knob: 1\n",
    ],
)
def test_invalid_policies_are_rejected(tmp_path: Path, body: str):
    f = tmp_path / "bad.yaml"
    f.write_text(body, encoding="utf-8")
    with pytest.raises(ValidationError):
        load_policy(f)


def test_non_mapping_policy_is_rejected(tmp_path: Path):
    f = tmp_path / "list.yaml"
    f.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_policy(f)


def test_policy_is_frozen():
    p = ReputationPolicy()
    with pytest.raises(ValidationError):
        p.rating.max_new_ratings_per_day = 100  # type: ignore[misc]


def test_new_users_start_at_policy_trust(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, db_session: Session):
    f = tmp_path / "policy.yaml"
    f.write_text("trust:\n  new_user_trust_score: 2.0\n", encoding="utf-8")
    monkeypatch.setenv(POLICY_PATH_ENV, str(f))
    get_policy.cache_clear()
    try:
        user = User(name="newcomer")
        db_session.add(user)
        db_session.commit()
    finally:
        get_policy.cache_clear()

    assert db_session.get(User, user.id, populate_existing=True).trust_score == 2.0
