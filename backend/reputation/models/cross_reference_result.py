"""CrossReferenceResult model.

An automated, independent verdict on whether a piece of content from a source
was corroborated. Produced by an external verifier and appended here; rows are
immutable and never deleted.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Double,
    ForeignKey,
    Index,
    Text,
    Uuid,
    event,
    func,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from reputation.core.base import Base, UUIDPrimaryKeyMixin, require_utc


class CrossReferenceImmutabilityError(RuntimeError):
    """Raised when an attempt is made to mutate or delete a CrossReferenceResult."""


class CrossReferenceResult(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "cross_reference_results"

    source_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("sources.id", ondelete="CASCADE"), nullable=False
    )

    # Content and claims live outside the reputation engine.
    content_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)

    claim_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    was_accurate: Mapped[bool] = mapped_column(Boolean, nullable=False)

    verification_source: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    confidence: Mapped[float] = mapped_column(Double, nullable=False, default=0.5)

    verified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_cross_reference_confidence_range"),
        Index("ix_cross_reference_results_source_id", "source_id"),
        Index("ix_cross_reference_results_content_id", "content_id"),
    )

    @validates("verified_at")
    def _validate_utc(self, key: str, value: datetime) -> datetime:
        return require_utc(key, value)


@event.listens_for(CrossReferenceResult, "before_update", propagate=True)
def _cross_reference_prevent_updates(mapper, connection, target) -> None:
    state = inspect(target)
    if not state.persistent:
        return

    changed = [a.key for a in state.attrs if a.history.has_changes()]
    if changed:
        raise CrossReferenceImmutabilityError(
            "CrossReferenceResult is append-only; updates are forbidden (changed: "
            + ", ".join(sorted(changed))
            + ")."
        )


@event.listens_for(CrossReferenceResult, "before_delete", propagate=True)
def _cross_reference_prevent_delete(mapper, connection, target) -> None:
    raise CrossReferenceImmutabilityError(
        "CrossReferenceResult deletion is forbidden. Verification evidence must remain auditable."
    )
