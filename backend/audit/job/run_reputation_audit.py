"""Reputation ledger audit entry point (READ-ONLY).

- Reads from DB only.
- Writes reputation_audit.json and logs one JSON event per check.
- Never corrects data; a non-OK status is for humans to investigate.
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

from sqlalchemy.exc import SQLAlchemyError  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from audit.checks import history_chain_check, score_bounds_check  # noqa: E402
from audit.report.audit_report import Check, build_report, write_report  # noqa: E402
from reputation.core.base import utc_now  # noqa: E402
from reputation.core.db import open_session  # noqa: E402
from reputation.core.env import load_env_if_present  # noqa: E402
import reputation.models as _models  # noqa: F401,E402
from scoring.core.policy import ReputationPolicy, get_policy  # noqa: E402


logger = logging.getLogger("reputation.audit")
logger.setLevel(logging.INFO)

DEFAULT_REPORT_PATH = Path(__file__).resolve().parents[1] / "report" / "reputation_audit.json"


def _log(event: dict) -> None:
    logger.info(json.dumps(event, ensure_ascii=False))


def run_audit(db: Session, *, now: datetime, policy: ReputationPolicy) -> dict:
    """Run every check and build the report dict."""
    if db.new or db.dirty or db.deleted:
        raise RuntimeError("Audit requires a clean session (read-only invariant).")

    checks: list[Check] = []

    st, details = score_bounds_check.run(db, policy=policy)
    checks.append(Check(name="score_bounds_check", status=st, details=details))
    _log({"event": "audit_check", "name": "score_bounds_check", "status": st})

    st, details = history_chain_check.run(db, tolerance=policy.aggregation.min_change)
    checks.append(Check(name="history_chain_check", status=st, details=details))
    _log({"event": "audit_check", "name": "history_chain_check", "status": st})

    return build_report(now=now, checks=checks)


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Audit reputation scores and the reliability history ledger.")
    ap.add_argument("--out", type=Path, default=DEFAULT_REPORT_PATH)
    args = ap.parse_args(argv)

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(message)s")

    load_env_if_present()
    db = open_session()
    try:
        report = run_audit(db, now=utc_now(), policy=get_policy())
    except SQLAlchemyError as ex:
        _log({"event": "audit_job_failed", "error_type": type(ex).__name__})
        return 1
    finally:
        db.close()

    write_report(args.out, report)
    _log({"event": "audit_report_written", "path": str(args.out), "overall_status": report["overall_status"]})
    return 0 if report["overall_status"] != "CRITICAL" else 2


if __name__ == "__main__":
    raise SystemExit(main())
