"""Core port contracts used by adapters, repositories and the graph inserter."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, AbstractContextManager
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Protocol

from .types import MaybeRow, QueryParams, RowMapping


class DialectPort(Protocol):
    """Dialect behavior required by query compilation and CRUD operations."""

    name: str
    paramstyle: str
    supports_returning: bool

    def q(self, ident: str) -> str: ...

    def placeholder(self, key: str) -> str: ...

    def auto_pk_sql(self, pk_name: str) -> str: ...

    def returning_clause(self, pk_name: str) -> str: ...

    def get_lastrowid(self, cursor: Any) -> Optional[int]: ...


class DatabasePort(Protocol):
    """Database adapter behavior required by the core repository."""

    dialect: DialectPort

    def transaction(self) -> AbstractContextManager[None]: ...

    def execute(self, sql: str, params: QueryParams = None) -> Any: ...

    def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow: ...

    def fetchall(self, sql: str, params: QueryParams = None) -> List[RowMapping]: ...


class AsyncDatabasePort(Protocol):
    """Async database adapter behavior required by the async repository."""

    dialect: DialectPort

    def transaction(self) -> AbstractAsyncContextManager[None]: ...

    async def execute(self, sql: str, params: QueryParams = None) -> Any: ...

    async def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow: ...

    async def fetchall(self, sql: str, params: QueryParams = None) -> List[RowMapping]: ...


class SchemaValidator(Protocol):
    """Validates the properties of one graph node before insertion.

    `pending` names the properties whose values are unresolved placeholders;
    implementations must not type-check those. Returns a mapping of property
    name to violation message, empty when the properties are valid.
    """

    def validate(
        self,
        properties: Mapping[str, Any],
        *,
        pending: FrozenSet[str] = frozenset(),
    ) -> Dict[str, str]: ...


class LifecycleHooks(Protocol):
    """Per-model callbacks invoked around each physical graph insert.

    Async inserters await the return value when it is awaitable.
    """

    def before_insert(self, obj: Any) -> Any: ...

    def after_insert(self, obj: Any) -> Any: ...
