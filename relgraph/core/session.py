"""Session facade for grouped sync repository operations and graph inserts."""

from __future__ import annotations

import contextlib
from contextlib import AbstractContextManager
from typing import Any, Dict, Iterator, Optional, Sequence, Type, TypeVar

from .conditions import OrderBy
from .contracts import DatabasePort
from .graph.executor import GraphResult, HooksMap
from .graph.relation_expression import ExpressionInput
from .graph.validation_gate import SchemaFactory
from .models import DataclassModel
from .query_builder import WhereInput
from .repository import Repository, UnifiedRepository
from .repository_relations import RelatedQuery
from .results import RelatedResult
from .types import GraphInput

T = TypeVar("T", bound=DataclassModel)


class Session:
    """Sync session that combines transaction scope with unified repositories.

    `begin()` blocks nest: an inner block runs in a savepoint of the outer
    transaction, so a failed graph insert inside it can be caught without
    losing the outer work.
    """

    def __init__(self, db: DatabasePort):
        self.db = db
        self._hub = UnifiedRepository(db)
        self._active_tx: AbstractContextManager[None] | None = None

    @property
    def hub(self) -> UnifiedRepository:
        """Expose the underlying unified repository instance."""

        return self._hub

    @contextlib.contextmanager
    def begin(self) -> Iterator[Session]:
        """Run operations in one commit/rollback block (a savepoint when nested)."""

        with self.db.transaction():
            yield self

    def transaction(self) -> contextlib.AbstractContextManager[Session]:
        """Alias for `begin()`."""

        return self.begin()

    def repo(self, model: Type[T]) -> Repository[T]:
        return self._hub.repo(model)

    def insert(self, model_or_object: Type[T] | T, obj: T | None = None) -> T:
        return self._hub.insert(model_or_object, obj)

    def insert_many(
        self,
        model_or_list: Type[T] | Sequence[T],
        objects: Sequence[T] | None = None,
    ) -> list[T]:
        return self._hub.insert_many(model_or_list, objects)

    def update(self, model_or_object: Type[T] | T, obj: T | None = None) -> int:
        return self._hub.update(model_or_object, obj)

    def delete(self, model_or_object: Type[T] | T, obj: T | None = None) -> int:
        return self._hub.delete(model_or_object, obj)

    def get(self, model: Type[T], pk_value: Any) -> Optional[T]:
        return self._hub.get(model, pk_value)

    def list(
        self,
        model: Type[T],
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[T]:
        return self._hub.list(model, where=where, order_by=order_by, limit=limit)

    def count(self, model: Type[T], where: WhereInput = None) -> int:
        return self._hub.count(model, where=where)

    def insert_graph(
        self,
        model: Type[T],
        graph: GraphInput,
        *,
        allowed: Optional[ExpressionInput] = None,
        hooks: Optional[HooksMap] = None,
        schema_for: Optional[SchemaFactory] = None,
    ) -> GraphResult:
        return self._hub.insert_graph(
            model, graph, allowed=allowed, hooks=hooks, schema_for=schema_for
        )

    def create(
        self,
        model_or_object: Type[T] | T,
        obj: T | None = None,
        *,
        relations: Optional[Dict[str, Any]] = None,
    ) -> T:
        return self._hub.create(model_or_object, obj, relations=relations)

    def get_related(
        self,
        model: Type[T],
        pk_value: Any,
        *,
        include: ExpressionInput,
    ) -> Optional[RelatedResult[T]]:
        return self._hub.get_related(model, pk_value, include=include)

    def list_related(
        self,
        model: Type[T],
        *,
        include: ExpressionInput,
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[RelatedResult[T]]:
        return self._hub.list_related(
            model, include=include, where=where, order_by=order_by, limit=limit
        )

    def related(self, parent: T, relation: str) -> RelatedQuery[Any]:
        return self._hub.related(parent, relation)

    def __enter__(self) -> Session:
        if self._active_tx is not None:
            raise RuntimeError("session transaction is already active")
        tx = self.db.transaction()
        tx.__enter__()
        self._active_tx = tx
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> bool | None:
        tx = self._active_tx
        self._active_tx = None
        if tx is None:
            return None
        return tx.__exit__(exc_type, exc, tb)
