from __future__ import annotations

import json
import logging
import time
import uuid

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from conftest import auth_header, make_jwt, seed_source, seed_user
from reputation.repositories.reputation_repo import ReputationRepository


def test_missing_token_is_401(client, db_session: Session):
    src = seed_source(db_session)
    assert client.get(f"/v1/sources/{src.id}/reputation").status_code == 401
    assert client.post(f"/v1/sources/{src.id}/rate", json={"rating": 3}).status_code == 401


def test_bad_signature_is_401(client, db_session: Session):
    src = seed_source(db_session)
    token = make_jwt("reader", "READ_ONLY", secret="wrong-secret")
    r = client.get(f"/v1/sources/{src.id}/reputation", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_expired_token_is_401(client, db_session: Session):
    src = seed_source(db_session)
    token = make_jwt("reader", "READ_ONLY", exp=int(time.time()) - 60)
    r = client.get(f"/v1/sources/{src.id}/reputation", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_unknown_role_is_rejected(client, db_session: Session):
    src = seed_source(db_session)
    r = client.get(f"/v1/sources/{src.id}/reputation", headers=auth_header("x", "SUPERUSER"))
    assert r.status_code == 401


@pytest.mark.parametrize(
    "role, method, path, body, expected",
    [
        ("READ_ONLY", "post", "/v1/sources/{sid}/rate", {"rating": 3}, 403),
        ("VERIFIER", "post", "/v1/sources/{sid}/rate", {"rating": 3}, 403),
        ("RATER", "post", "/v1/sources/{sid}/cross-references", {"content_id": "{cid}", "was_accurate": True}, 403),
        ("READ_ONLY", "post", "/v1/users/{uid}/adjudications", {"accurate": True}, 403),
        ("VERIFIER", "post", "/v1/reputation/decay", None, 403),
        ("RATER", "post", "/v1/sources/{sid}/articles", None, 403),
    ],
)
def test_role_allow_lists(client, db_session: Session, role, method, path, body, expected):
    src = seed_source(db_session)
    user = seed_user(db_session)
    url = path.format(sid=src.id, uid=user.id)
    if body is not None:
        body = {k: (str(uuid.uuid4()) if v == "{cid}" else v) for k, v in body.items()}

    r = getattr(client, method)(url, json=body, headers=auth_header(str(user.id), role))
    assert r.status_code == expected


@pytest.mark.parametrize("role", ["READ_ONLY", "RATER", "VERIFIER", "ADMIN"])
def test_every_role_can_read(client, db_session: Session, role: str):
    src = seed_source(db_session)
    assert client.get(f"/v1/sources/{src.id}/reputation", headers=auth_header("x", role)).status_code == 200


def test_request_id_is_echoed(client, db_session: Session):
    src = seed_source(db_session)
    r = client.get(
        f"/v1/sources/{src.id}/reputation",
        headers={**auth_header("reader", "READ_ONLY"), "x-request-id": "req-123"},
    )
    assert r.headers["x-request-id"] == "req-123"

    generated = client.get(f"/v1/sources/{src.id}/reputation", headers=auth_header("reader", "READ_ONLY"))
    assert generated.headers["x-request-id"]


def test_access_log_is_json_without_credentials(client, db_session: Session, caplog: pytest.LogCaptureFixture):
    src = seed_source(db_session)
    headers = auth_header("reader", "READ_ONLY")
    caplog.set_level(logging.INFO, logger="reputation")

    client.get(f"/v1/sources/{src.id}/reputation", headers={**headers, "x-request-id": "req-log"})

    access = [json.loads(r.getMessage()) for r in caplog.records if r.name == "reputation" and '"access"' in r.getMessage()]
    assert access
    entry = access[-1]
    assert entry["request_id"] == "req-log"
    assert entry["status_code"] == 200
    assert entry["path"] == f"/v1/sources/{src.id}/reputation"
    token = headers["Authorization"].split(" ", 1)[1]
    assert all(token not in r.getMessage() for r in caplog.records)


def test_database_outage_is_503(client, db_session: Session, monkeypatch: pytest.MonkeyPatch):
    src = seed_source(db_session)

    async def _down(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(ReputationRepository, "get_reputation", _down)

    r = client.get(f"/v1/sources/{src.id}/reputation", headers=auth_header("reader", "READ_ONLY"))
    assert r.status_code == 503
    assert r.json() == {"detail": "Service temporarily unavailable."}
