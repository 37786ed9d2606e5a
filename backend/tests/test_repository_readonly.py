from __future__ import annotations

import asyncio
import re
from datetime import timedelta
from pathlib import Path

import pytest
from sqlalchemy import insert, select
from sqlalchemy.orm import Session

from conftest import NOW, seed_source, seed_user
from reputation.models.source import Source
from reputation.repositories.base import RepositoryReadOnlyViolation
from reputation.repositories.reputation_repo import ReputationRepository
from reputation.services.reputation_service import submit_rating


REPO_DIR = Path(__file__).resolve().parents[1] / "reputation" / "repositories"

_WRITE_PATTERNS = [
    re.compile(r"\.(add|add_all|delete|merge|flush|commit)\("),
    re.compile(r"\b(insert|update|delete)\("),
]


def test_repositories_contain_no_write_calls():
    offenders: list[str] = []
    for path in sorted(REPO_DIR.glob("*.py")):
        for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
            if any(p.search(line) for p in _WRITE_PATTERNS):
                offenders.append(f"{path.name}:{lineno}: {line.strip()}")
    assert offenders == []


def test_dirty_session_is_rejected(db_session: Session):
    src = seed_source(db_session)
    db_session.add(Source(name="pending"))

    with pytest.raises(RepositoryReadOnlyViolation):
        asyncio.run(ReputationRepository(db_session).get_reputation(src.id))
    db_session.rollback()


def test_dml_statement_is_rejected(db_session: Session):
    repo = ReputationRepository(db_session)
    with pytest.raises(RepositoryReadOnlyViolation):
        asyncio.run(repo._execute(insert(Source).values(name="sneaky")))
    assert asyncio.run(repo._execute(select(Source.id))).all() == []


def test_reputation_read_model(db_session: Session, policy):
    src = seed_source(db_session, last_article_at=NOW - timedelta(days=3))
    for i, v in enumerate([5, 4, 2]):
        user = seed_user(db_session, f"u{i}", trust=1.0 + i)
        submit_rating(db_session, src.id, user.id, v, now=NOW, policy=policy)

    rep = asyncio.run(ReputationRepository(db_session).get_reputation(src.id, now=NOW, policy=policy))

    assert rep is not None
    assert rep.total_ratings == 3
    assert rep.average_rating == pytest.approx(11 / 3)
    # Weights are the trust scores at submission: 1, 2, 3.
    assert rep.weighted_average_rating == pytest.approx((5 * 1 + 4 * 2 + 2 * 3) / 6)
    assert rep.is_stale is False
    assert len(rep.recent_ratings) == 3
    assert not (db_session.new or db_session.dirty or db_session.deleted)
