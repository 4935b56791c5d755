# erp_persistence/repositories/base.py
"""
Shared plumbing for the repositories: handle injection, single-row lookups
that translate "no rows" into EntityNotFoundError, and builder-backed
list/count.
"""
from __future__ import annotations
from typing import Any, List, Optional, Sequence, Type, TypeVar

from erp_persistence.database import DatabaseHandle
from erp_persistence.errors import EntityNotFoundError
from erp_persistence.filters import ListParams
from erp_persistence.models import Record
from erp_persistence.query_builder import BuildMode, build

R = TypeVar("R", bound=Record)


class BaseRepository:
    """Base class holding the database handle."""

    entity: str = ""
    record: Type[Record] = Record

    def __init__(self, db: DatabaseHandle):
        self.db = db

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _fetch_one(self, sql: str, args: Sequence[Any], key: Any,
                         context: str, record: Optional[Type[R]] = None) -> R:
        row = await self.db.query_one(sql, args, context=context)
        if row is None:
            raise EntityNotFoundError(self.entity, key)
        return (record or self.record).from_row(row)

    async def _fetch_many(self, sql: str, args: Sequence[Any], context: str,
                          record: Optional[Type[R]] = None) -> List[R]:
        rows = await self.db.query_many(sql, args, context=context)
        return (record or self.record).from_rows(rows)

    async def _exists(self, sql: str, args: Sequence[Any], context: str) -> bool:
        return bool(await self.db.query_scalar(sql, args, context=context))

    async def _affect_one(self, sql: str, args: Sequence[Any], key: Any, context: str) -> None:
        """Run a keyed UPDATE/DELETE; zero affected rows means the key is unknown."""
        if await self.db.exec(sql, args, context=context) == 0:
            raise EntityNotFoundError(self.entity, key)

    async def _list(self, filter: Optional[ListParams]) -> list:
        sql, params = build(self.entity, filter, BuildMode.select_rows)
        return await self._fetch_many(sql, params, context=f"list {self.entity}")

    async def _count(self, filter: Optional[ListParams]) -> int:
        sql, params = build(self.entity, filter, BuildMode.count)
        return int(await self.db.query_scalar(sql, params, context=f"count {self.entity}") or 0)


def insert_sql(table: str, columns: Sequence[str], suffix: str = "") -> str:
    """INSERT with one ``$n`` placeholder per column, in column order."""
    placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}){suffix}"


def values_of(record: Record, columns: Sequence[str]) -> List[Any]:
    return [getattr(record, c) for c in columns]


def update_sql(table: str, columns: Sequence[str]) -> str:
    """Keyed UPDATE: ``$1`` is the id, ``columns`` follow from ``$2``; updated_at is stamped by the server."""
    assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=2))
    return f"UPDATE {table} SET {assignments}, updated_at = NOW() WHERE id = $1"
