"""Reliability history chain check (reputation audit).

Every score change is recorded, so per source the ledger must chain:
each entry's old_score equals the previous entry's new_score, and the
latest new_score equals the stored reliability score (within tolerance).

A broken link means a score write bypassed the recorder.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from reputation.core.base import ensure_utc
from reputation.models.reliability_history import ReliabilityHistory
from reputation.models.source import Source


DEFAULT_TOLERANCE = 0.1


def _close(a: float, b: float, tolerance: float) -> bool:
    return abs(a - b) <= tolerance + 1e-9


def order_chain(entries: Sequence[ReliabilityHistory], *, tolerance: float = DEFAULT_TOLERANCE) -> list[ReliabilityHistory]:
    """Entries in ledger order.

    Entries are ordered by changed_at. Entries sharing a timestamp are linked
    by following old_score -> new_score, since the ledger has no sequence column.
    """
    remaining = sorted(entries, key=lambda e: ensure_utc(e.changed_at))
    ordered: list[ReliabilityHistory] = []
    while remaining:
        head_time = ensure_utc(remaining[0].changed_at)
        batch = [e for e in remaining if ensure_utc(e.changed_at) == head_time]
        remaining = remaining[len(batch):]
        prev: Optional[float] = ordered[-1].new_score if ordered else None
        while batch:
            nxt = next((e for e in batch if prev is not None and _close(e.old_score, prev, tolerance)), batch[0])
            batch.remove(nxt)
            ordered.append(nxt)
            prev = nxt.new_score
    return ordered


def find_breaks(
    chain: Iterable[ReliabilityHistory], stored_score: float, *, tolerance: float = DEFAULT_TOLERANCE
) -> tuple[int, bool]:
    """(number of broken links, whether the tip disagrees with the stored score)."""
    breaks = 0
    prev: Optional[float] = None
    for entry in chain:
        if prev is not None and not _close(entry.old_score, prev, tolerance):
            breaks += 1
        prev = entry.new_score
    tip_mismatch = prev is not None and not _close(prev, stored_score, tolerance)
    return breaks, tip_mismatch


def run(db: Session, *, tolerance: float = DEFAULT_TOLERANCE) -> tuple[str, dict]:
    """Return (status, details) where status is OK|DEGRADED|CRITICAL."""
    status = "OK"
    warnings: list[str] = []

    def warn(level: str, msg: str) -> None:
        nonlocal status
        warnings.append(msg)
        if level == "CRITICAL":
            status = "CRITICAL"
        elif level == "DEGRADED" and status != "CRITICAL":
            status = "DEGRADED"

    by_source: dict[uuid.UUID, list[ReliabilityHistory]] = defaultdict(list)
    for entry in db.execute(select(ReliabilityHistory)).scalars():
        by_source[entry.source_id].append(entry)

    scores = dict(db.execute(select(Source.id, Source.reliability_score)).all())

    broken_sources: list[str] = []
    tip_mismatches: list[str] = []
    for source_id, entries in by_source.items():
        stored = scores.get(source_id)
        if stored is None:
            continue
        breaks, tip_mismatch = find_breaks(order_chain(entries, tolerance=tolerance), float(stored), tolerance=tolerance)
        if breaks:
            broken_sources.append(str(source_id))
        if tip_mismatch:
            tip_mismatches.append(str(source_id))

    if broken_sources:
        warn("DEGRADED", f"History chain broken for {len(broken_sources)} source(s).")
    if tip_mismatches:
        warn("CRITICAL", f"Stored score disagrees with latest history entry for {len(tip_mismatches)} source(s).")

    details = {
        "sources_checked": len(by_source),
        "broken_chain_sources": sorted(broken_sources),
        "tip_mismatch_sources": sorted(tip_mismatches),
        "warnings": warnings,
    }
    return status, details
