from __future__ import annotations

"""Controlled errors for the scoring engine.

- Anomaly detection and decay are best-effort: their errors are logged and
  swallowed at the boundary, never surfaced as a rating submission failure.
- Aggregation errors propagate to the caller (no retries).
"""


class ScoringError(RuntimeError):
    """Base error for the scoring engine."""


class AnomalyDetectionError(ScoringError):
    """Raised when the anomaly pass for a source cannot complete."""


class DecayError(ScoringError):
    """Raised when a decay step for one source cannot be persisted."""


class PersistenceError(ScoringError):
    """Raised when a score write loses a compare-and-swap or violates an invariant."""
