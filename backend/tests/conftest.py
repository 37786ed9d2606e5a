from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


ROOT = Path(__file__).resolve().parents[2]

# Ensure `backend/` packages are importable as top-level modules for tests.
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from reputation.models.source import Source  # noqa: E402
from reputation.models.user import User  # noqa: E402
from scoring.core.policy import DEFAULT_POLICY_PATH, ReputationPolicy, load_policy  # noqa: E402


UTC = timezone.utc
JWT_SECRET = "test-secret"

# Fixed clock for engine calls; the anomaly window and decay gates are time based.
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _alembic_config(db_url: str) -> Config:
    # No ini file: keeps Alembic from reconfiguring logging mid-session.
    cfg = Config()
    cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'reputation.db'}"


@pytest.fixture()
def engine(db_url: str) -> Generator[Engine, None, None]:
    """Fresh database per test, migrated to head."""
    command.upgrade(_alembic_config(db_url), "head")
    eng = create_engine(db_url, future=True)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def policy() -> ReputationPolicy:
    return load_policy(DEFAULT_POLICY_PATH)


@pytest.fixture()
def client(session_factory: sessionmaker, policy: ReputationPolicy, monkeypatch: pytest.MonkeyPatch):
    """TestClient wired to the per-test database."""
    from fastapi.testclient import TestClient

    from reputation.api.deps import get_db_session, get_reputation_policy
    from reputation.main import app

    monkeypatch.setenv("REP_JWT_SECRET", JWT_SECRET)

    def _session() -> Generator[Session, None, None]:
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db_session] = _session
    app.dependency_overrides[get_reputation_policy] = lambda: policy
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_jwt(sub: str, role: str, secret: str = JWT_SECRET, *, exp: int | None = None) -> str:
    """HS256 JWT generator for API tests (no external dependency)."""
    import base64, hashlib, hmac, json  # noqa: E401

    def b64url(raw: bytes) -> str:
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    header = {"alg": "HS256", "typ": "JWT"}
    payload: dict = {"sub": sub, "role": role}
    if exp is not None:
        payload["exp"] = exp

    header_b64 = b64url(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = b64url(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    sig = hmac.new(secret.encode("utf-8"), signing_input, hashlib.sha256).digest()
    return f"{header_b64}.{payload_b64}.{b64url(sig)}"


def auth_header(sub: str, role: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_jwt(sub, role)}"}


def seed_source(
    db: Session,
    name: str = "Example Wire",
    *,
    score: float = 50.0,
    last_article_at: Optional[datetime] = None,
    decay_applied_at: Optional[datetime] = None,
) -> Source:
    s = Source(
        name=name,
        reliability_score=score,
        last_article_at=last_article_at,
        decay_applied_at=decay_applied_at,
    )
    db.add(s)
    db.commit()
    return s


def seed_user(
    db: Session,
    name: Optional[str] = "reader",
    *,
    trust: float = 1.0,
    total_ratings_given: int = 0,
    accurate_ratings: int = 0,
) -> User:
    u = User(
        name=name,
        trust_score=trust,
        total_ratings_given=total_ratings_given,
        accurate_ratings=accurate_ratings,
    )
    db.add(u)
    db.commit()
    return u
