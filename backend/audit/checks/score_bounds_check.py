"""Score bounds check (reputation audit).

- Reliability scores must lie in the aggregation range (0..100).
- Trust scores must lie in the trust policy bounds.
- accurate_ratings can never exceed total_ratings_given.
Warn loudly; never auto-correct.
"""

from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from reputation.models.source import Source
from reputation.models.user import User
from scoring.core.policy import ReputationPolicy


def run(db: Session, *, policy: ReputationPolicy) -> tuple[str, dict]:
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

    agg = policy.aggregation
    out_of_range_sources = db.execute(
        select(func.count(Source.id)).where(
            or_(Source.reliability_score < agg.score_min, Source.reliability_score > agg.score_max)
        )
    ).scalar_one()
    if int(out_of_range_sources) > 0:
        warn("CRITICAL", f"{out_of_range_sources} source(s) have a reliability score outside [{agg.score_min}, {agg.score_max}].")

    trust = policy.trust
    out_of_range_users = db.execute(
        select(func.count(User.id)).where(
            or_(User.trust_score < trust.min_trust_score, User.trust_score > trust.max_trust_score)
        )
    ).scalar_one()
    if int(out_of_range_users) > 0:
        warn("CRITICAL", f"{out_of_range_users} user(s) have a trust score outside [{trust.min_trust_score}, {trust.max_trust_score}].")

    over_accurate = db.execute(
        select(func.count(User.id)).where(User.accurate_ratings > User.total_ratings_given)
    ).scalar_one()
    if int(over_accurate) > 0:
        warn("DEGRADED", f"{over_accurate} user(s) have more accurate ratings than ratings given.")

    details = {
        "sources_out_of_range": int(out_of_range_sources),
        "users_out_of_range": int(out_of_range_users),
        "users_over_accurate": int(over_accurate),
        "warnings": warnings,
    }
    return status, details
