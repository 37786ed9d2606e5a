"""Role model for reputation API access control."""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """API roles.

    READ_ONLY reads reputation data. RATER also submits ratings. VERIFIER
    records cross-reference verdicts and rating adjudications. ADMIN does
    everything, including flag review and manual decay runs.
    """

    READ_ONLY = "READ_ONLY"
    RATER = "RATER"
    VERIFIER = "VERIFIER"
    ADMIN = "ADMIN"


READ_ROLES = frozenset({Role.READ_ONLY, Role.RATER, Role.VERIFIER, Role.ADMIN})


def is_role_allowed(subject_role: Role, allowed: set[Role]) -> bool:
    """Default-deny role check with explicit allow set."""
    return subject_role in allowed
