"""Async relation orchestration for repository graph-insert and eager-load APIs."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from .conditions import C, OrderBy
from .graph import AsyncGraphInserter, GraphContext, RelationExpression, prepare_insert
from .graph.executor import GraphResult, HooksMap
from .graph.relation_expression import ExpressionInput
from .graph.validation_gate import SchemaFactory
from .metadata import cached_model_metadata
from .models import DataclassModel, RelationSpec, RelationType
from .query_builder import WhereInput
from .repository_crud_async import list_rows
from .repository_relations import (
    attach_many_to_many,
    attach_rows,
    dedupe_non_null,
    distinct_objects,
    expand_include,
    wrap_nested,
)
from .results import RelatedResult
from .types import GraphInput

if TYPE_CHECKING:
    from .repository_async import AsyncRepository

T = TypeVar("T", bound=DataclassModel)


class AsyncRelationCoordinator(Generic[T]):
    """Encapsulates async graph insert and eager-load workflows."""

    def __init__(self, repo: "AsyncRepository[T]") -> None:
        self.repo = repo

    async def insert_graph(
        self,
        literal: GraphInput,
        *,
        allowed: Optional[ExpressionInput] = None,
        hooks: Optional[HooksMap] = None,
        schema_for: Optional[SchemaFactory] = None,
        relations: Optional[Dict[str, Any]] = None,
        context: Optional[GraphContext] = None,
        model: Optional[Type[Any]] = None,
    ) -> GraphResult:
        plan = prepare_insert(
            model or self.repo.model,
            literal,
            allowed=allowed,
            relations=relations,
            context=context,
            schema_for=schema_for,
        )
        return await AsyncGraphInserter(self.repo.db, hooks=hooks).execute(plan)

    async def create(self, obj: T, *, relations: Optional[Dict[str, Any]] = None) -> T:
        if not relations:
            return await self.repo.insert(obj)
        await self.insert_graph(obj, relations=relations)
        return obj

    async def get_related(
        self,
        pk_value: Any,
        *,
        include: ExpressionInput,
    ) -> Optional[RelatedResult[T]]:
        obj = await self.repo.get(pk_value)
        if obj is None:
            return None
        loaded = await self.load(self.repo.model, [obj], RelationExpression.parse(include))
        return RelatedResult(obj=obj, relations=loaded[0])

    async def list_related(
        self,
        *,
        include: ExpressionInput,
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[RelatedResult[T]]:
        tree = RelationExpression.parse(include)
        expand_include(self.repo.meta, tree)
        rows = await self.repo.list(where=where, order_by=order_by, limit=limit)
        loaded = await self.load(self.repo.model, rows, tree)
        return [
            RelatedResult(obj=row, relations=relations)
            for row, relations in zip(rows, loaded, strict=True)
        ]

    async def load(
        self,
        model: Type[Any],
        objects: Sequence[Any],
        tree: RelationExpression,
    ) -> List[Dict[str, Any]]:
        meta = cached_model_metadata(model)
        expanded = expand_include(meta, tree)
        results: List[Dict[str, Any]] = [dict() for _ in objects]
        if not objects:
            return results

        async def attach(name: str, subtree: RelationExpression) -> None:
            spec = meta.relations[name]
            values = await self._fetch(spec, objects)
            if subtree:
                related = distinct_objects(values)
                nested = await self.load(spec.model, related, subtree)
                values = wrap_nested(values, related, nested)
            for result, value in zip(results, values, strict=True):
                result[name] = value

        await asyncio.gather(*(attach(name, subtree) for name, subtree in expanded))
        return results

    async def _fetch(self, spec: RelationSpec, objects: Sequence[Any]) -> List[Any]:
        db = self.repo.db
        target = cached_model_metadata(spec.model)
        keys = dedupe_non_null(getattr(obj, spec.local_key) for obj in objects)

        if spec.relation_type is RelationType.MANY_TO_MANY:
            assert spec.through is not None
            through = cached_model_metadata(spec.through.model)
            links = []
            if keys:
                links = await list_rows(
                    db,
                    through,
                    where=C.in_(spec.through.local_key, keys),
                    order_by=[OrderBy(through.pk)],
                )
            remote_keys = dedupe_non_null(getattr(link, spec.through.remote_key) for link in links)
            rows = []
            if remote_keys:
                rows = await list_rows(db, target, where=C.in_(spec.remote_key, remote_keys))
            return attach_many_to_many(spec, objects, links, rows)

        rows = []
        if keys:
            order_by = None
            if spec.relation_type is not RelationType.BELONGS_TO:
                order_by = [OrderBy(spec.remote_key), OrderBy(target.pk)]
            rows = await list_rows(db, target, where=C.in_(spec.remote_key, keys), order_by=order_by)
        return attach_rows(spec, objects, rows)


class AsyncRelatedQuery(Generic[T]):
    """Async operations scoped to one relation of one persisted object."""

    def __init__(self, coordinator: AsyncRelationCoordinator[Any], parent: Any, relation: str) -> None:
        if not isinstance(parent, coordinator.repo.model):
            raise TypeError(
                f"Parent must be a {coordinator.repo.model.__name__}, got {type(parent).__name__}."
            )
        self._coordinator = coordinator
        self.parent = parent
        self.relation = relation
        self.context = GraphContext(parent=parent, relation=relation)
        self.spec = self.context.spec()

    async def insert_graph(
        self,
        literal: GraphInput,
        *,
        allowed: Optional[ExpressionInput] = None,
        hooks: Optional[HooksMap] = None,
        schema_for: Optional[SchemaFactory] = None,
    ) -> GraphResult:
        return await self._coordinator.insert_graph(
            literal,
            allowed=allowed,
            hooks=hooks,
            schema_for=schema_for,
            context=self.context,
            model=self.spec.model,
        )

    async def list(self, *, include: Optional[ExpressionInput] = None) -> Any:
        subtree = RelationExpression.parse(include) if include is not None else RelationExpression()
        tree = RelationExpression(children={self.relation: subtree})
        loaded = await self._coordinator.load(type(self.parent), [self.parent], tree)
        return loaded[0][self.relation]
