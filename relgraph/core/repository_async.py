"""Async repository facade that composes CRUD, graph-insert and relation coordinators."""

from __future__ import annotations

from typing import Any, Dict, Generic, Optional, Sequence, Type, TypeVar, cast

from ._unified_resolver import resolve_model_and_obj, resolve_model_and_objects
from .conditions import OrderBy
from .contracts import AsyncDatabasePort
from .graph.executor import GraphResult, HooksMap
from .graph.relation_expression import ExpressionInput
from .graph.validation_gate import SchemaFactory
from .metadata import cached_model_metadata
from .models import DataclassModel, require_dataclass_model
from .query_builder import WhereInput
from .repository_crud_async import (
    count_rows,
    delete_row,
    get_row,
    insert_row,
    list_rows,
    update_row,
)
from .repository_relations_async import AsyncRelatedQuery, AsyncRelationCoordinator
from .results import RelatedResult
from .types import GraphInput

T = TypeVar("T", bound=DataclassModel)


class AsyncRepository(Generic[T]):
    """Async CRUD and graph-insert repository backed by an `AsyncDatabasePort`."""

    def __init__(self, db: AsyncDatabasePort, model: Type[T]):
        require_dataclass_model(model)
        self.db = db
        self.model = model
        self.d = db.dialect
        self.meta = cached_model_metadata(model)
        self._relations = AsyncRelationCoordinator(self)

    async def insert(self, obj: T) -> T:
        return await insert_row(self.db, self.meta, obj)

    async def insert_many(self, objects: Sequence[T]) -> list[T]:
        return [await self.insert(obj) for obj in objects]

    async def update(self, obj: T) -> int:
        return await update_row(self.db, self.meta, obj)

    async def delete(self, obj: T) -> int:
        return await delete_row(self.db, self.meta, obj)

    async def get(self, pk_value: Any) -> Optional[T]:
        return await get_row(self.db, self.meta, pk_value)

    async def list(
        self,
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[T]:
        return await list_rows(self.db, self.meta, where=where, order_by=order_by, limit=limit)

    async def count(self, where: WhereInput = None) -> int:
        return await count_rows(self.db, self.meta, where=where)

    async def insert_graph(
        self,
        graph: GraphInput,
        *,
        allowed: Optional[ExpressionInput] = None,
        hooks: Optional[HooksMap] = None,
        schema_for: Optional[SchemaFactory] = None,
    ) -> GraphResult:
        """Async `Repository.insert_graph`; hooks may be coroutine functions."""

        return await self._relations.insert_graph(
            graph, allowed=allowed, hooks=hooks, schema_for=schema_for
        )

    async def create(self, obj: T, *, relations: Optional[Dict[str, Any]] = None) -> T:
        return await self._relations.create(obj, relations=relations)

    async def get_related(
        self,
        pk_value: Any,
        *,
        include: ExpressionInput,
    ) -> Optional[RelatedResult[T]]:
        return await self._relations.get_related(pk_value, include=include)

    async def list_related(
        self,
        *,
        include: ExpressionInput,
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[RelatedResult[T]]:
        return await self._relations.list_related(
            include=include,
            where=where,
            order_by=order_by,
            limit=limit,
        )

    def related(self, parent: T, relation: str) -> AsyncRelatedQuery[Any]:
        return AsyncRelatedQuery(self._relations, parent, relation)


class AsyncUnifiedRepository:
    """Route async operations to cached `AsyncRepository[T]` instances."""

    def __init__(self, db: AsyncDatabasePort):
        self.db = db
        self._repos: dict[type[DataclassModel], AsyncRepository[Any]] = {}

    def repo(self, model: Type[T]) -> AsyncRepository[T]:
        cached = self._repos.get(model)
        if cached is None:
            cached = AsyncRepository(self.db, model)
            self._repos[model] = cached
        return cast(AsyncRepository[T], cached)

    async def insert(self, model_or_object: Type[T] | T, obj: T | None = None) -> T:
        model, resolved_obj = resolve_model_and_obj(model_or_object, obj)
        return await self.repo(model).insert(resolved_obj)

    async def insert_many(
        self,
        model_or_list: Type[T] | Sequence[T],
        objects: Sequence[T] | None = None,
    ) -> list[T]:
        model, resolved_objects = resolve_model_and_objects(model_or_list, objects)
        return await self.repo(model).insert_many(resolved_objects)

    async def update(self, model_or_object: Type[T] | T, obj: T | None = None) -> int:
        model, resolved_obj = resolve_model_and_obj(model_or_object, obj)
        return await self.repo(model).update(resolved_obj)

    async def delete(self, model_or_object: Type[T] | T, obj: T | None = None) -> int:
        model, resolved_obj = resolve_model_and_obj(model_or_object, obj)
        return await self.repo(model).delete(resolved_obj)

    async def get(self, model: Type[T], pk_value: Any) -> Optional[T]:
        return await self.repo(model).get(pk_value)

    async def list(
        self,
        model: Type[T],
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[T]:
        return await self.repo(model).list(where=where, order_by=order_by, limit=limit)

    async def count(self, model: Type[T], where: WhereInput = None) -> int:
        return await self.repo(model).count(where=where)

    async def insert_graph(
        self,
        model: Type[T],
        graph: GraphInput,
        *,
        allowed: Optional[ExpressionInput] = None,
        hooks: Optional[HooksMap] = None,
        schema_for: Optional[SchemaFactory] = None,
    ) -> GraphResult:
        return await self.repo(model).insert_graph(
            graph, allowed=allowed, hooks=hooks, schema_for=schema_for
        )

    async def create(
        self,
        model_or_object: Type[T] | T,
        obj: T | None = None,
        *,
        relations: Optional[Dict[str, Any]] = None,
    ) -> T:
        model, resolved_obj = resolve_model_and_obj(model_or_object, obj)
        return await self.repo(model).create(resolved_obj, relations=relations)

    async def get_related(
        self,
        model: Type[T],
        pk_value: Any,
        *,
        include: ExpressionInput,
    ) -> Optional[RelatedResult[T]]:
        return await self.repo(model).get_related(pk_value, include=include)

    async def list_related(
        self,
        model: Type[T],
        *,
        include: ExpressionInput,
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[RelatedResult[T]]:
        return await self.repo(model).list_related(
            include=include,
            where=where,
            order_by=order_by,
            limit=limit,
        )

    def related(self, parent: T, relation: str) -> AsyncRelatedQuery[Any]:
        return self.repo(type(parent)).related(parent, relation)
