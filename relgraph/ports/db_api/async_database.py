"""Async DB adapter implementation for the core async database port."""

from __future__ import annotations

import contextlib
import inspect
import logging
from typing import Any, AsyncIterator, Mapping

from ...core._async_utils import _maybe_await
from ...core.types import MaybeRow, QueryParams, RowMapping, Rows
from .dialects import Dialect

logger = logging.getLogger(__name__)


class AsyncDatabase:
    """Async database wrapper that normalizes execute and row mapping behavior.

    Accepts native async connections as well as plain DB-API connections;
    every driver call is awaited only when it returns an awaitable. Nested
    `transaction()` scopes use savepoints, as in `Database`.
    """

    def __init__(self, conn: Any, dialect: Dialect):
        """Create async database adapter.

        Args:
            conn: Async (or sync) DB connection object.
            dialect: Concrete SQL dialect instance.
        """

        self._closed = False
        self._depth = 0
        self.conn = conn
        self.dialect = dialect

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def _should_begin_sqlite_transaction(self) -> bool:
        return getattr(self.dialect, "name", "").lower() == "sqlite"

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Provide async commit/rollback transaction scope.

        Uncommitted work already open on the connection is kept: the scope
        then runs as a savepoint and leaves commit to the caller.
        """

        if self._depth or getattr(self.conn, "in_transaction", False):
            async with self._savepoint():
                yield
            return

        self._depth = 1
        try:
            if self._should_begin_sqlite_transaction():
                await _maybe_await(self.conn.execute("BEGIN"))
            try:
                yield
            except BaseException:
                logger.debug("rolling back transaction on %s", self.dialect.name)
                await _maybe_await(self.conn.rollback())
                raise
            else:
                await _maybe_await(self.conn.commit())
        finally:
            self._depth = 0

    @contextlib.asynccontextmanager
    async def _savepoint(self) -> AsyncIterator[None]:
        name = f"relgraph_sp_{self._depth}"
        self._depth += 1
        try:
            await self._run(self.dialect.savepoint_sql(name))
            try:
                yield
            except BaseException:
                logger.debug("rolling back to savepoint %s", name)
                await self._run(self.dialect.rollback_to_savepoint_sql(name))
                await self._run(self.dialect.release_savepoint_sql(name))
                raise
            await self._run(self.dialect.release_savepoint_sql(name))
        finally:
            self._depth -= 1

    async def _run(self, sql: str) -> None:
        cur = await self.execute(sql)
        await self._close_cursor(cur)

    async def execute(self, sql: str, params: QueryParams = None) -> Any:
        """Execute SQL with optional parameters and return cursor."""

        cur = await _maybe_await(self.conn.cursor())
        try:
            if params is None:
                await _maybe_await(cur.execute(sql))
            else:
                await _maybe_await(cur.execute(sql, params))
        except BaseException:
            await self._close_cursor(cur)
            raise
        return cur

    async def _close_cursor(self, cur: Any) -> None:
        close = getattr(cur, "close", None)
        if callable(close):
            await _maybe_await(close())

    def _row_to_mapping(self, cursor: Any, row: Any) -> RowMapping:
        if isinstance(row, Mapping):
            return row

        if isinstance(row, (tuple, list)):
            desc = getattr(cursor, "description", None)
            if not desc:
                raise TypeError(
                    "Cursor has no description; cannot map tuple rows to dict."
                )
            cols = [d[0] for d in desc]
            return dict(zip(cols, row, strict=True))

        try:
            return dict(row)
        except (TypeError, ValueError):
            pass

        raise TypeError(f"Unsupported row type: {type(row)}")

    async def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow:
        """Execute query and return one normalized row mapping."""

        cur = await self.execute(sql, params)
        try:
            row = await _maybe_await(cur.fetchone())
            if row is None:
                return None
            return self._row_to_mapping(cur, row)
        finally:
            await self._close_cursor(cur)

    async def fetchall(self, sql: str, params: QueryParams = None) -> Rows:
        """Execute query and return all rows as normalized mappings."""

        cur = await self.execute(sql, params)
        try:
            rows = await _maybe_await(cur.fetchall())
            return [self._row_to_mapping(cur, r) for r in rows]
        finally:
            await self._close_cursor(cur)

    def close(self) -> None:
        """Close a sync underlying connection; async ones need `aclose()`."""

        if self._closed:
            return
        close = getattr(self.conn, "close", None)
        if not callable(close):
            self._closed = True
            return
        if inspect.iscoroutinefunction(getattr(type(self.conn), "close", None)):
            return
        self._closed = True
        close()

    async def aclose(self) -> None:
        """Async close of the underlying connection."""

        if self._closed:
            return
        self._closed = True
        close = getattr(self.conn, "close", None)
        if callable(close):
            await _maybe_await(close())

    async def __aenter__(self) -> AsyncDatabase:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.aclose()
