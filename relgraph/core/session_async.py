"""Session facade for grouped async repository operations and graph inserts."""

from __future__ import annotations

import contextlib
from contextlib import AbstractAsyncContextManager
from typing import Any, AsyncIterator, Dict, Optional, Sequence, Type, TypeVar

from .conditions import OrderBy
from .contracts import AsyncDatabasePort
from .graph.executor import GraphResult, HooksMap
from .graph.relation_expression import ExpressionInput
from .graph.validation_gate import SchemaFactory
from .models import DataclassModel
from .query_builder import WhereInput
from .repository_async import AsyncRepository, AsyncUnifiedRepository
from .repository_relations_async import AsyncRelatedQuery
from .results import RelatedResult
from .types import GraphInput

T = TypeVar("T", bound=DataclassModel)


class AsyncSession:
    """Async session that combines transaction scope with unified repositories."""

    def __init__(self, db: AsyncDatabasePort):
        self.db = db
        self._hub = AsyncUnifiedRepository(db)
        self._active_tx: AbstractAsyncContextManager[None] | None = None

    @property
    def hub(self) -> AsyncUnifiedRepository:
        return self._hub

    @contextlib.asynccontextmanager
    async def begin(self) -> AsyncIterator[AsyncSession]:
        """Run operations in one commit/rollback block (a savepoint when nested)."""

        async with self.db.transaction():
            yield self

    def transaction(self) -> contextlib.AbstractAsyncContextManager[AsyncSession]:
        return self.begin()

    def repo(self, model: Type[T]) -> AsyncRepository[T]:
        return self._hub.repo(model)

    async def insert(self, model_or_object: Type[T] | T, obj: T | None = None) -> T:
        return await self._hub.insert(model_or_object, obj)

    async def insert_many(
        self,
        model_or_list: Type[T] | Sequence[T],
        objects: Sequence[T] | None = None,
    ) -> list[T]:
        return await self._hub.insert_many(model_or_list, objects)

    async def update(self, model_or_object: Type[T] | T, obj: T | None = None) -> int:
        return await self._hub.update(model_or_object, obj)

    async def delete(self, model_or_object: Type[T] | T, obj: T | None = None) -> int:
        return await self._hub.delete(model_or_object, obj)

    async def get(self, model: Type[T], pk_value: Any) -> Optional[T]:
        return await self._hub.get(model, pk_value)

    async def list(
        self,
        model: Type[T],
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[T]:
        return await self._hub.list(model, where=where, order_by=order_by, limit=limit)

    async def count(self, model: Type[T], where: WhereInput = None) -> int:
        return await self._hub.count(model, where=where)

    async def insert_graph(
        self,
        model: Type[T],
        graph: GraphInput,
        *,
        allowed: Optional[ExpressionInput] = None,
        hooks: Optional[HooksMap] = None,
        schema_for: Optional[SchemaFactory] = None,
    ) -> GraphResult:
        return await self._hub.insert_graph(
            model, graph, allowed=allowed, hooks=hooks, schema_for=schema_for
        )

    async def create(
        self,
        model_or_object: Type[T] | T,
        obj: T | None = None,
        *,
        relations: Optional[Dict[str, Any]] = None,
    ) -> T:
        return await self._hub.create(model_or_object, obj, relations=relations)

    async def get_related(
        self,
        model: Type[T],
        pk_value: Any,
        *,
        include: ExpressionInput,
    ) -> Optional[RelatedResult[T]]:
        return await self._hub.get_related(model, pk_value, include=include)

    async def list_related(
        self,
        model: Type[T],
        *,
        include: ExpressionInput,
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[RelatedResult[T]]:
        return await self._hub.list_related(
            model, include=include, where=where, order_by=order_by, limit=limit
        )

    def related(self, parent: T, relation: str) -> AsyncRelatedQuery[Any]:
        return self._hub.related(parent, relation)

    async def __aenter__(self) -> AsyncSession:
        if self._active_tx is not None:
            raise RuntimeError("session transaction is already active")
        tx = self.db.transaction()
        await tx.__aenter__()
        self._active_tx = tx
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> bool | None:
        tx = self._active_tx
        self._active_tx = None
        if tx is None:
            return None
        return await tx.__aexit__(exc_type, exc, tb)
