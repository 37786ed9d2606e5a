"""RatingAnomaly model.

Record of a suspicious rating pattern detected for a source. The detection
itself (type, affected rating ids, details, time) is immutable. Human review
may mark the record resolved exactly once, with a resolution action.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Text, Uuid, event, func, inspect
from sqlalchemy.orm import Mapped, mapped_column, validates

from reputation.core.base import Base, JSONDocument, UUIDPrimaryKeyMixin, require_utc


class RatingAnomalyMutationError(RuntimeError):
    """Raised when an attempt is made to mutate or delete a RatingAnomaly illegally."""


class AnomalyType(str, Enum):
    SPIKE = "spike"
    COORDINATED = "coordinated"


class RatingAnomaly(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "rating_anomalies"

    source_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("sources.id", ondelete="CASCADE"), nullable=False
    )

    anomaly_type: Mapped[str] = mapped_column(Text, nullable=False)

    details: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)

    # Rating ids as strings (JSON-portable).
    affected_rating_ids: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)

    detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    resolution_action: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_rating_anomalies_source_id", "source_id"),
        Index("ix_rating_anomalies_detected_at", "detected_at"),
    )

    @validates("detected_at")
    def _validate_utc(self, key: str, value: datetime) -> datetime:
        return require_utc(key, value)


@event.listens_for(RatingAnomaly, "before_update", propagate=True)
def _rating_anomaly_controlled_mutability(mapper, connection, target) -> None:
    """Allow a single resolution; forbid rewriting the detection."""
    state = inspect(target)
    if not state.persistent:
        return

    changed = {a.key for a in state.attrs if a.history.has_changes()}
    unexpected = changed - {"resolved", "resolution_action"}
    if unexpected:
        raise RatingAnomalyMutationError(
            "RatingAnomaly detection is immutable: unexpected field update(s): "
            + ", ".join(sorted(unexpected))
        )

    resolved_hist = state.attrs["resolved"].history
    if resolved_hist.deleted and resolved_hist.deleted[0] is True:
        raise RatingAnomalyMutationError("RatingAnomaly is already resolved; resolution cannot be changed.")

    action_hist = state.attrs["resolution_action"].history
    if action_hist.deleted and action_hist.deleted[0] is not None:
        raise RatingAnomalyMutationError("RatingAnomaly resolution_action cannot be rewritten.")


@event.listens_for(RatingAnomaly, "before_delete", propagate=True)
def _rating_anomaly_prevent_delete(mapper, connection, target) -> None:
    raise RatingAnomalyMutationError(
        "RatingAnomaly deletion is forbidden. Detections must remain available for review."
    )
