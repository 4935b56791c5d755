"""
Shared fixtures: an in-memory stand-in for DatabaseHandle.

FakeHandle records every statement with its parameters and replays scripted
results in call order. An unscripted call falls back to a neutral default
(one affected row, no rows, a NULL scalar). A scripted exception instance is
raised instead of returned.
"""
from __future__ import annotations
import re
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, List, Tuple

import pytest

_DEFAULTS = {
    "exec": 1,
    "query_one": None,
    "query_many": [],
    "query_scalar": None,
}


class _FakeExecutor:
    def __init__(self, handle: "FakeHandle"):
        self._handle = handle

    async def exec(self, sql: str, args=(), context: str = "exec") -> int:
        return self._handle._next("exec", sql, args, context)

    async def query_one(self, sql: str, args=(), context: str = "query"):
        return self._handle._next("query_one", sql, args, context)

    async def query_many(self, sql: str, args=(), context: str = "query"):
        return self._handle._next("query_many", sql, args, context)

    async def query_scalar(self, sql: str, args=(), context: str = "query"):
        return self._handle._next("query_scalar", sql, args, context)


class FakeTransaction(_FakeExecutor):
    def __init__(self, handle: "FakeHandle"):
        super().__init__(handle)
        self.committed = False
        self.rolled_back = False

    async def commit(self) -> None:
        self.committed = True

    async def rollback(self) -> None:
        self.rolled_back = True


class FakeHandle(_FakeExecutor):
    def __init__(self):
        super().__init__(self)
        self.statements: List[Tuple[str, List[Any]]] = []
        self.contexts: List[str] = []
        self.transactions: List[FakeTransaction] = []
        self._results: deque = deque()

    def script(self, *results: Any) -> "FakeHandle":
        self._results.extend(results)
        return self

    def _next(self, method: str, sql: str, args, context: str):
        self.statements.append((sql, list(args)))
        self.contexts.append(context)
        if not self._results:
            default = _DEFAULTS[method]
            return list(default) if isinstance(default, list) else default
        result = self._results.popleft()
        if isinstance(result, BaseException):
            raise result
        return result

    @asynccontextmanager
    async def begin(self):
        tx = FakeTransaction(self)
        self.transactions.append(tx)
        try:
            yield tx
        except BaseException:
            await tx.rollback()
            raise
        await tx.commit()

    # -- inspection helpers ---------------------------------------------------

    @property
    def last_sql(self) -> str:
        return self.statements[-1][0]

    @property
    def last_params(self) -> List[Any]:
        return self.statements[-1][1]


def normalize(sql: str) -> str:
    """Collapse whitespace so assertions don't depend on statement layout."""
    return re.sub(r"\s+", " ", sql).strip()


def placeholders(sql: str) -> List[int]:
    return sorted({int(n) for n in re.findall(r"\$(\d+)", sql)})


@pytest.fixture
def db() -> FakeHandle:
    return FakeHandle()
