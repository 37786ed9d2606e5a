"""Reputation policy (named, tunable knobs).

The thresholds and weights used by the engine are policy, not derived values.
They are loaded from YAML into frozen pydantic models and passed into every
scoring function, so the algorithms never embed literals.

Resolution order for the policy file:
1. explicit `path` argument
2. `REP_POLICY_PATH` env var
3. `scoring/config/reputation_policy.yaml` shipped with the package
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

from reputation.core.env import load_env_if_present


POLICY_PATH_ENV = "REP_POLICY_PATH"
DEFAULT_POLICY_PATH = Path(__file__).resolve().parents[1] / "config" / "reputation_policy.yaml"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class RatingPolicy(_Frozen):
    min_value: int = 1
    max_value: int = 5
    max_new_ratings_per_day: int = Field(20, ge=1)

    @model_validator(mode="after")
    def _ordered(self) -> "RatingPolicy":
        if self.min_value > self.max_value:
            raise ValueError("rating.min_value must be <= rating.max_value")
        return self


class TrustPolicy(_Frozen):
    # Bounds are fixed by the users.trust_score check constraint (0.1..3.0);
    # tuning may only narrow them.
    min_trust_score: float = Field(0.1, ge=0.1, le=3.0)
    max_trust_score: float = Field(3.0, ge=0.1, le=3.0)
    new_user_trust_score: float = 1.0

    @model_validator(mode="after")
    def _ordered(self) -> "TrustPolicy":
        if not self.min_trust_score <= self.new_user_trust_score <= self.max_trust_score:
            raise ValueError("trust bounds must satisfy min <= new_user <= max")
        return self


class AnomalyPolicy(_Frozen):
    window_minutes: int = Field(60, ge=1)
    min_ratings: int = Field(5, ge=2)
    coordinated_fraction: float = Field(0.8, gt=0, le=1)


class AggregationPolicy(_Frozen):
    weight_user_ratings: float = Field(0.3, ge=0)
    weight_cross_reference: float = Field(0.5, ge=0)
    # The prior-score anchor must always contribute.
    weight_current_score: float = Field(0.2, gt=0)
    rating_scale: float = Field(20.0, gt=0)
    min_change: float = Field(0.1, ge=0)
    score_min: float = 0.0
    score_max: float = 100.0

    @model_validator(mode="after")
    def _ordered(self) -> "AggregationPolicy":
        if self.score_min >= self.score_max:
            raise ValueError("aggregation.score_min must be < aggregation.score_max")
        return self


class DecayPolicy(_Frozen):
    stale_days: int = Field(30, ge=1)
    cadence_days: int = Field(7, ge=1)
    points_per_step: float = Field(2.0, gt=0)
    score_floor: float = Field(10.0, ge=0)


class ReputationViewPolicy(_Frozen):
    recent_ratings: int = Field(5, ge=0)


class ReputationPolicy(_Frozen):
    version: str = "1"
    rating: RatingPolicy = Field(default_factory=RatingPolicy)
    trust: TrustPolicy = Field(default_factory=TrustPolicy)
    anomaly: AnomalyPolicy = Field(default_factory=AnomalyPolicy)
    aggregation: AggregationPolicy = Field(default_factory=AggregationPolicy)
    decay: DecayPolicy = Field(default_factory=DecayPolicy)
    reputation: ReputationViewPolicy = Field(default_factory=ReputationViewPolicy)

    @model_validator(mode="after")
    def _decay_within_score_range(self) -> "ReputationPolicy":
        if not self.aggregation.score_min <= self.decay.score_floor <= self.aggregation.score_max:
            raise ValueError("decay.score_floor must lie within the aggregation score range")
        return self


def _load_yaml(path: Path) -> dict[str, Any]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"policy yaml must be a mapping: {path}")
    return raw


def load_policy(path: Optional[Path] = None) -> ReputationPolicy:
    """Load and validate a policy file (no caching)."""
    if path is None:
        load_env_if_present()
        env_path = os.environ.get(POLICY_PATH_ENV)
        path = Path(env_path) if env_path else DEFAULT_POLICY_PATH
    return ReputationPolicy.model_validate(_load_yaml(Path(path)))


@lru_cache(maxsize=1)
def get_policy() -> ReputationPolicy:
    """Process-wide policy, loaded once."""
    return load_policy()
