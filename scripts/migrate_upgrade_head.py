"""Upgrade the reputation schema to Alembic head (no downgrade).

Usage:
  python scripts/migrate_upgrade_head.py

Reads DATABASE_URL from the environment or `.env` (repo root) / `backend/.env`.
"""

from __future__ import annotations

import sys
from pathlib import Path

from alembic import command
from alembic.config import Config


ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from reputation.core.db import get_database_url  # noqa: E402


def alembic_config(url: str) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def main() -> int:
    try:
        url = get_database_url()
    except RuntimeError as e:
        print(str(e))
        return 2

    print("Upgrading Alembic to head…")
    command.upgrade(alembic_config(url), "head")
    print("PASS: upgraded to head.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
