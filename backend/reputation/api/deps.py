"""API dependencies."""

from __future__ import annotations

import uuid
from collections.abc import Generator

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from reputation.core.db import open_session
from scoring.core.policy import ReputationPolicy, get_policy


def get_db_session() -> Generator[Session, None, None]:
    """Request-scoped session. Writes commit inside the engine services."""
    session: Session = open_session()
    try:
        yield session
    finally:
        session.close()


def get_reputation_policy() -> ReputationPolicy:
    return get_policy()


def parse_uuid(value: str, what: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Invalid {what} UUID.") from e


def require_clean_session(db: Session) -> None:
    """Read endpoints must never leave pending changes behind."""
    if db.new or db.dirty or db.deleted:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Read-only invariant violated: pending DB changes detected.",
        )
