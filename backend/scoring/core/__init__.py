"""Scoring core primitives for the reputation engine."""

from scoring.core.aggregation import (
    ScoreInputs,
    ScoreUpdate,
    blend_reliability_score,
    gather_score_inputs,
    recompute_source_score,
)
from scoring.core.anomaly import (
    AnomalyFinding,
    WindowClassification,
    classify_rating_window,
    detect_rating_anomalies,
)
from scoring.core.decay import DecayDetail, DecaySummary, apply_reputation_decay, decay_step
from scoring.core.errors import AnomalyDetectionError, DecayError, PersistenceError, ScoringError
from scoring.core.policy import ReputationPolicy, get_policy, load_policy
from scoring.core.trust import compute_trust_score, record_rating_adjudication, update_user_trust_score

__all__ = [
    "AnomalyDetectionError",
    "AnomalyFinding",
    "DecayDetail",
    "DecayError",
    "DecaySummary",
    "PersistenceError",
    "ReputationPolicy",
    "ScoreInputs",
    "ScoreUpdate",
    "ScoringError",
    "WindowClassification",
    "apply_reputation_decay",
    "blend_reliability_score",
    "classify_rating_window",
    "compute_trust_score",
    "decay_step",
    "detect_rating_anomalies",
    "gather_score_inputs",
    "get_policy",
    "load_policy",
    "record_rating_adjudication",
    "recompute_source_score",
    "update_user_trust_score",
]
