"""Read-only repository base.

- Read endpoints go through repositories only.
- Read-only discipline is enforced so a read path can never flush a pending
  score or rating change by accident.
"""

from __future__ import annotations

from typing import Any, Generic, Optional, TypeVar

from sqlalchemy.engine import Result
from sqlalchemy.orm import Session
from sqlalchemy.sql import Executable
from sqlalchemy.sql.dml import UpdateBase
from sqlalchemy.sql.selectable import Select


class RepositoryReadOnlyViolation(RuntimeError):
    """Raised when a repository detects a write or mutation attempt."""


T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Guarded SELECT execution over a request-scoped Session."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _assert_clean_uow(self) -> None:
        s = self._session
        if s.new or s.dirty or s.deleted:
            raise RepositoryReadOnlyViolation(
                "Repository layer is read-only: session has pending changes "
                f"(new={len(s.new)}, dirty={len(s.dirty)}, deleted={len(s.deleted)})."
            )

    @staticmethod
    def _assert_select_only(stmt: Executable) -> None:
        if isinstance(stmt, UpdateBase):
            raise RepositoryReadOnlyViolation("Repository layer is read-only: DML is forbidden.")
        if not isinstance(stmt, Select):
            raise RepositoryReadOnlyViolation(
                f"Repository layer is read-only: only SELECT statements are allowed (got {type(stmt)!r})."
            )

    async def _execute(self, stmt: Executable, *, params: Optional[dict[str, Any]] = None) -> Result[Any]:
        self._assert_select_only(stmt)
        self._assert_clean_uow()
        result = self._session.execute(stmt, params or {})
        self._assert_clean_uow()
        return result

    async def _scalar(self, stmt: Executable) -> Any:
        return (await self._execute(stmt)).scalar_one_or_none()
