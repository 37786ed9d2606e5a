"""Reputation decay job entry point.

Invoked by an external scheduler (cron, Task Scheduler). Running it more than
once a day is harmless: the weekly gate on each source prevents double steps.

Usage:
  python -m scoring.job.run_reputation_decay [--policy path/to/policy.yaml]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

# Ensure backend/ is importable when run as a script.
BASE_DIR = Path(__file__).resolve().parents[2]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from reputation.core.base import UTC, utc_now  # noqa: E402
from reputation.core.db import open_session  # noqa: E402
from reputation.core.env import load_env_if_present  # noqa: E402
import reputation.models as _models  # noqa: F401,E402
from scoring.core.decay import DecaySummary, apply_reputation_decay  # noqa: E402
from scoring.core.policy import get_policy, load_policy  # noqa: E402


logger = logging.getLogger("reputation.decay")
logger.setLevel(logging.INFO)


def _log(event: dict) -> None:
    logger.info(json.dumps(event, ensure_ascii=False, default=str))


def _parse_now(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def summary_event(summary: DecaySummary, *, now: datetime) -> dict:
    return {
        "event": "decay_run_completed",
        "run_time": now.isoformat(),
        "processed": summary.processed,
        "decayed": summary.decayed,
        "failed": summary.failed,
        "details": [
            {
                "source_id": str(d.source_id),
                "name": d.name,
                "old_score": d.old_score,
                "new_score": d.new_score,
                "days_since_last_article": d.days_since_last_article,
                "weeks_stale": d.weeks_stale,
            }
            for d in summary.details
        ],
    }


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Apply weekly reputation decay to stale sources.")
    ap.add_argument("--policy", type=Path, default=None, help="Policy YAML (defaults to REP_POLICY_PATH or bundled file).")
    ap.add_argument("--now", default=None, help="ISO-8601 run time override (UTC assumed when naive).")
    args = ap.parse_args(argv)

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(message)s")

    load_env_if_present()
    policy = load_policy(args.policy) if args.policy else get_policy()
    now = _parse_now(args.now) or utc_now()

    db = open_session()
    try:
        summary = apply_reputation_decay(db, now=now, policy=policy)
    finally:
        db.close()

    _log(summary_event(summary, now=now))
    # Per-source failures are reported in the summary, not via the exit code.
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
