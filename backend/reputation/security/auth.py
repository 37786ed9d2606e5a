"""Token authentication for the reputation API.

- Bearer JWT tokens (HS256) issued by the surrounding application.
- `sub` is the user id the caller acts as; `role` selects the allow-list.
- Default deny. Endpoints must explicitly allow roles.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import time
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import Depends, HTTPException, Request, status

from reputation.security.roles import Role, is_role_allowed


JWT_SECRET_ENV = "REP_JWT_SECRET"


class AuthError(HTTPException):
    pass


@dataclass(frozen=True, slots=True)
class Principal:
    sub: str
    role: Role
    token_fingerprint: str  # safe to log


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _get_jwt_secret() -> bytes:
    secret = os.environ.get(JWT_SECRET_ENV)
    if not secret:
        raise RuntimeError(f"Missing required env var {JWT_SECRET_ENV}.")
    return secret.encode("utf-8")


def _unauthorized(detail: str) -> AuthError:
    return AuthError(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def decode_and_verify_jwt(token: str) -> dict[str, Any]:
    """Verify an HS256 JWT and return its claims.

    Required claims: `sub`, `role`. Optional: `exp` (unix seconds).
    """
    try:
        header_b64, payload_b64, sig_b64 = token.split(".")
    except ValueError as e:
        raise _unauthorized("Invalid token format.") from e

    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    expected_sig = _b64url_encode(hmac.new(_get_jwt_secret(), signing_input, hashlib.sha256).digest())
    if not hmac.compare_digest(expected_sig, sig_b64):
        raise _unauthorized("Invalid token signature.")

    try:
        header = json.loads(_b64url_decode(header_b64))
        payload = json.loads(_b64url_decode(payload_b64))
    except (ValueError, UnicodeDecodeError) as e:
        raise _unauthorized("Invalid token encoding.") from e

    if not isinstance(header, dict) or not isinstance(payload, dict):
        raise _unauthorized("Invalid token encoding.")
    if header.get("alg") != "HS256":
        raise _unauthorized("Unsupported token header.")

    exp = payload.get("exp")
    if exp is not None:
        try:
            exp_i = int(exp)
        except (TypeError, ValueError) as e:
            raise _unauthorized("Invalid exp claim.") from e
        if int(time.time()) >= exp_i:
            raise _unauthorized("Token expired.")

    if "sub" not in payload or "role" not in payload:
        raise _unauthorized("Missing required claims.")

    return payload


def token_fingerprint(token: str) -> str:
    raw = hashlib.sha256(token.encode("utf-8")).digest()
    return _b64url_encode(raw[:18])


def get_current_principal(request: Request) -> Principal:
    """Extract and validate the bearer token."""
    auth = request.headers.get("authorization")
    if not auth or not auth.lower().startswith("bearer "):
        raise _unauthorized("Missing bearer token.")
    token = auth.split(" ", 1)[1].strip()
    if not token:
        raise _unauthorized("Missing bearer token.")

    claims = decode_and_verify_jwt(token)
    try:
        role = Role(str(claims["role"]))
    except ValueError as e:
        raise _unauthorized("Invalid role claim.") from e

    sub = str(claims["sub"])
    if not sub:
        raise _unauthorized("Invalid sub claim.")

    return Principal(sub=sub, role=role, token_fingerprint=token_fingerprint(token))


def require_roles(*allowed_roles: Role) -> Callable[[Principal], Principal]:
    """FastAPI dependency factory enforcing an explicit allow-list."""

    allowed = set(allowed_roles)

    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not is_role_allowed(principal.role, allowed):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied.")
        return principal

    return _dep
