"""ReliabilityHistory model.

Every reliability score mutation appends one row (old score, new score, reason,
metadata). The chain of entries is a reconstructable ledger of the score:
each entry's `old_score` is the previous entry's `new_score`. Entries are
immutable and never deleted, and are never read back into live scoring.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Double, ForeignKey, Index, Text, Uuid, event, func, inspect
from sqlalchemy.orm import Mapped, mapped_column, validates

from reputation.core.base import Base, JSONDocument, UUIDPrimaryKeyMixin, require_utc


class ReliabilityHistoryImmutabilityError(RuntimeError):
    """Raised when an attempt is made to mutate or delete a ReliabilityHistory entry."""


class ChangeReason(str, Enum):
    USER_RATING = "user_rating"
    CROSS_REFERENCE = "cross_reference"
    ANOMALY_CORRECTION = "anomaly_correction"
    DECAY = "decay"


class ReliabilityHistory(UUIDPrimaryKeyMixin, Base):
    """Immutable score-change audit record."""

    __tablename__ = "reliability_history"

    source_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("sources.id", ondelete="CASCADE"), nullable=False
    )

    old_score: Mapped[float] = mapped_column(Double, nullable=False)

    new_score: Mapped[float] = mapped_column(Double, nullable=False)

    # Stored as text so reasons can be added without an enum migration.
    change_reason: Mapped[str] = mapped_column(Text, nullable=False)

    change_metadata: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)

    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_reliability_history_source_id", "source_id"),
        Index("ix_reliability_history_changed_at", "changed_at"),
    )

    @validates("changed_at")
    def _validate_utc(self, key: str, value: datetime) -> datetime:
        return require_utc(key, value)


@event.listens_for(ReliabilityHistory, "before_update", propagate=True)
def _reliability_history_prevent_updates(mapper, connection, target) -> None:
    state = inspect(target)
    if not state.persistent:
        return

    changed = [a.key for a in state.attrs if a.history.has_changes()]
    if changed:
        raise ReliabilityHistoryImmutabilityError(
            "ReliabilityHistory is immutable; updates are forbidden (changed: "
            + ", ".join(sorted(changed))
            + "). Score changes are always additive."
        )


@event.listens_for(ReliabilityHistory, "before_delete", propagate=True)
def _reliability_history_prevent_delete(mapper, connection, target) -> None:
    raise ReliabilityHistoryImmutabilityError(
        "ReliabilityHistory deletion is forbidden. The score ledger must remain reconstructable."
    )
