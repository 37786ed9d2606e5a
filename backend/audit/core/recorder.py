"""Reliability history recorder.

Append-only sink for score mutations. Each call is a single insert (no
read-modify-write, no uniqueness constraint), so concurrent writers never
contend here. Callers own the transaction: the history row commits or rolls
back together with the score write it describes.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from reputation.core.base import utc_now
from reputation.models.reliability_history import ChangeReason, ReliabilityHistory

logger = logging.getLogger(__name__)


def record_reliability_change(
    db: Session,
    *,
    source_id: uuid.UUID,
    old_score: float,
    new_score: float,
    reason: ChangeReason,
    metadata: Optional[Dict[str, Any]] = None,
    changed_at: Optional[datetime] = None,
) -> ReliabilityHistory:
    """Append one history entry for a score change."""
    entry = ReliabilityHistory(
        source_id=source_id,
        old_score=float(old_score),
        new_score=float(new_score),
        change_reason=reason.value,
        change_metadata=dict(metadata or {}),
        changed_at=changed_at or utc_now(),
    )
    db.add(entry)
    # Don't commit here, part of the caller's score transaction.
    logger.debug("history entry source=%s %s -> %s (%s)", source_id, old_score, new_score, reason.value)
    return entry
