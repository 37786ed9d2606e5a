"""Minimal `.env` support for the API, the jobs and Alembic.

Files are read in order: repo root `.env`, then `backend/.env`. Variables
already present in the process environment win unless `override=True`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator, Optional


# backend/reputation/core/env.py -> repo root
REPO_ROOT = Path(__file__).resolve().parents[3]
ENV_FILES = (REPO_ROOT / ".env", REPO_ROOT / "backend" / ".env")


def _parse_env_line(line: str) -> Optional[tuple[str, str]]:
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key, value = key.strip(), value.strip()
    if not sep or not key:
        return None
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return key, value


def _iter_env_pairs(paths: tuple[Path, ...]) -> Iterator[tuple[str, str]]:
    for p in paths:
        if not p.is_file():
            continue
        try:
            content = p.read_text(encoding="utf-8")
        except OSError:
            continue
        for raw in content.splitlines():
            parsed = _parse_env_line(raw)
            if parsed:
                yield parsed


def load_env_if_present(*, override: bool = False, paths: tuple[Path, ...] = ENV_FILES) -> None:
    """Load `.env` files into the process environment if they exist."""
    for key, value in _iter_env_pairs(paths):
        if override or key not in os.environ:
            os.environ[key] = value
