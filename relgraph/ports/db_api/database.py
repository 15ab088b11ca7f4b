"""DB-API adapter implementation for the core database port."""

from __future__ import annotations

import contextlib
import logging
from typing import Any, Iterator, Mapping

from ...core.types import MaybeRow, QueryParams, RowMapping, Rows
from .dialects import Dialect

logger = logging.getLogger(__name__)


class Database:
    """Thin DB-API wrapper that normalizes execute and row mapping behavior.

    `transaction()` is re-entrant: the outermost scope commits or rolls back,
    nested scopes run inside a savepoint so a failing inner block only undoes
    its own statements. When the connection already holds uncommitted work
    from outside any scope, the outermost scope is a savepoint as well and
    the caller's transaction is left open.
    """

    def __init__(self, conn: Any, dialect: Dialect):
        """Create database adapter.

        Args:
            conn: DB-API connection object.
            dialect: Concrete SQL dialect instance.
        """

        self._closed = False
        self._depth = 0
        self.conn: Any | None = conn
        self.dialect = dialect

    @property
    def in_transaction(self) -> bool:
        """Whether a `transaction()` scope is currently open on this adapter."""

        return self._depth > 0

    def _require_open_connection(self) -> Any:
        if self._closed or self.conn is None:
            raise RuntimeError("connection is closed")
        return self.conn

    def _should_begin_sqlite_transaction(self) -> bool:
        return getattr(self.dialect, "name", "").lower() == "sqlite"

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """Provide commit/rollback transaction scope."""

        conn = self._require_open_connection()
        if self._depth or getattr(conn, "in_transaction", False):
            with self._savepoint():
                yield
            return

        self._depth = 1
        try:
            if self._should_begin_sqlite_transaction():
                conn.execute("BEGIN")
            yield
            conn.commit()
        except BaseException:
            logger.debug("rolling back transaction on %s", self.dialect.name)
            conn.rollback()
            raise
        finally:
            self._depth = 0

    @contextlib.contextmanager
    def _savepoint(self) -> Iterator[None]:
        name = f"relgraph_sp_{self._depth}"
        self._depth += 1
        try:
            self.execute(self.dialect.savepoint_sql(name))
            try:
                yield
            except BaseException:
                logger.debug("rolling back to savepoint %s", name)
                self.execute(self.dialect.rollback_to_savepoint_sql(name))
                self.execute(self.dialect.release_savepoint_sql(name))
                raise
            self.execute(self.dialect.release_savepoint_sql(name))
        finally:
            self._depth -= 1

    def execute(self, sql: str, params: QueryParams = None) -> Any:
        """Execute SQL with optional parameters and return cursor."""

        conn = self._require_open_connection()
        cur = conn.cursor()
        if params is None:
            cur.execute(sql)
        else:
            cur.execute(sql, params)
        return cur

    def _row_to_mapping(self, cursor: Any, row: Any) -> RowMapping:
        """Normalize row object to mapping.

        Supports mapping rows directly and tuple/list rows via
        `cursor.description`.
        """

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

    def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow:
        """Execute query and return one normalized row mapping."""

        cur = self.execute(sql, params)
        row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_mapping(cur, row)

    def fetchall(self, sql: str, params: QueryParams = None) -> Rows:
        """Execute query and return all rows as normalized mappings."""

        cur = self.execute(sql, params)
        rows = cur.fetchall()
        return [self._row_to_mapping(cur, r) for r in rows]

    def close(self) -> None:
        """Close the underlying connection."""

        if self._closed:
            return
        conn = self.conn
        self._closed = True
        self.conn = None
        close = getattr(conn, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()
