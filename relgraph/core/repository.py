"""Repository facade that composes CRUD, graph-insert and relation coordinators."""

from __future__ import annotations

from typing import Any, Dict, Generic, Optional, Sequence, Type, TypeVar, cast

from ._unified_resolver import resolve_model_and_obj, resolve_model_and_objects
from .conditions import OrderBy
from .contracts import DatabasePort
from .graph.executor import GraphResult, HooksMap
from .graph.relation_expression import ExpressionInput
from .graph.validation_gate import SchemaFactory
from .metadata import cached_model_metadata
from .models import DataclassModel, require_dataclass_model
from .query_builder import WhereInput
from .repository_crud import count_rows, delete_row, get_row, insert_row, list_rows, update_row
from .repository_relations import RelatedQuery, RelationCoordinator
from .results import RelatedResult
from .types import GraphInput

T = TypeVar("T", bound=DataclassModel)


class Repository(Generic[T]):
    """CRUD and graph-insert repository backed by a `DatabasePort` implementation."""

    def __init__(self, db: DatabasePort, model: Type[T]):
        """Create repository for a model type.

        Args:
            db: Database adapter implementing `DatabasePort`.
            model: Dataclass model type.
        """

        require_dataclass_model(model)
        self.db = db
        self.model = model
        self.d = db.dialect
        self.meta = cached_model_metadata(model)
        self._relations = RelationCoordinator(self)

    def insert(self, obj: T) -> T:
        """Insert an object and populate auto primary key when available."""

        return insert_row(self.db, self.meta, obj)

    def insert_many(self, objects: Sequence[T]) -> list[T]:
        """Insert many objects and return inserted objects."""

        return [self.insert(obj) for obj in objects]

    def update(self, obj: T) -> int:
        """Update one row identified by model primary key.

        Returns:
            Number of affected rows.

        Raises:
            ValueError: If primary key value is missing on the object.
        """

        return update_row(self.db, self.meta, obj)

    def delete(self, obj: T) -> int:
        """Delete one row identified by model primary key."""

        return delete_row(self.db, self.meta, obj)

    def get(self, pk_value: Any) -> Optional[T]:
        """Fetch one row by primary key and map it to the model type."""

        return get_row(self.db, self.meta, pk_value)

    def list(
        self,
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[T]:
        """List rows with optional filtering, sorting and limit."""

        return list_rows(self.db, self.meta, where=where, order_by=order_by, limit=limit)

    def count(self, where: WhereInput = None) -> int:
        """Count rows matching optional conditions."""

        return count_rows(self.db, self.meta, where=where)

    def insert_graph(
        self,
        graph: GraphInput,
        *,
        allowed: Optional[ExpressionInput] = None,
        hooks: Optional[HooksMap] = None,
        schema_for: Optional[SchemaFactory] = None,
    ) -> GraphResult:
        """Insert a nested object graph atomically.

        Args:
            graph: Mapping or model instance (or a sequence of them) whose
                relation keys hold nested related nodes. `"#id"` names a
                node, `{"#ref": id}` reuses it and `"#ref{id.column}"` in a
                string property is replaced by that column's value.
            allowed: Relation expression every populated relation path must
                fall inside, e.g. `"[children.pets, parent]"`. `None` allows
                all paths.
            hooks: Lifecycle hooks per model class.
            schema_for: Callable returning the validator for a model class.

        Returns:
            `RelatedResult` tree mirroring the literal, or a list of them when
            `graph` is a sequence.

        Raises:
            ValidationError: Before any insert, if a node or path is rejected.
            ResolutionError: Before any insert, if references cannot be resolved.
            StorageError: If the database rejects a row; nothing is persisted.
        """

        return self._relations.insert_graph(
            graph, allowed=allowed, hooks=hooks, schema_for=schema_for
        )

    def create(self, obj: T, *, relations: Optional[Dict[str, Any]] = None) -> T:
        """Create one object and optionally its related records in one graph insert."""

        return self._relations.create(obj, relations=relations)

    def get_related(self, pk_value: Any, *, include: ExpressionInput) -> Optional[RelatedResult[T]]:
        """Get one record and requested (possibly nested) relations."""

        return self._relations.get_related(pk_value, include=include)

    def list_related(
        self,
        *,
        include: ExpressionInput,
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[RelatedResult[T]]:
        """List records with requested related records."""

        return self._relations.list_related(
            include=include,
            where=where,
            order_by=order_by,
            limit=limit,
        )

    def related(self, parent: T, relation: str) -> RelatedQuery[Any]:
        """Scope reads and graph inserts to `relation` of a persisted `parent`."""

        return RelatedQuery(self._relations, parent, relation)


class UnifiedRepository:
    """Route operations to cached `Repository[T]` instances by model class."""

    def __init__(self, db: DatabasePort):
        self.db = db
        self._repos: dict[type[DataclassModel], Repository[Any]] = {}

    def repo(self, model: Type[T]) -> Repository[T]:
        """Return cached repository for a dataclass model class."""

        cached = self._repos.get(model)
        if cached is None:
            cached = Repository(self.db, model)
            self._repos[model] = cached
        return cast(Repository[T], cached)

    def insert(self, model_or_object: Type[T] | T, obj: T | None = None) -> T:
        model, resolved_obj = resolve_model_and_obj(model_or_object, obj)
        return self.repo(model).insert(resolved_obj)

    def insert_many(
        self,
        model_or_list: Type[T] | Sequence[T],
        objects: Sequence[T] | None = None,
    ) -> list[T]:
        model, resolved_objects = resolve_model_and_objects(model_or_list, objects)
        return self.repo(model).insert_many(resolved_objects)

    def update(self, model_or_object: Type[T] | T, obj: T | None = None) -> int:
        model, resolved_obj = resolve_model_and_obj(model_or_object, obj)
        return self.repo(model).update(resolved_obj)

    def delete(self, model_or_object: Type[T] | T, obj: T | None = None) -> int:
        model, resolved_obj = resolve_model_and_obj(model_or_object, obj)
        return self.repo(model).delete(resolved_obj)

    def get(self, model: Type[T], pk_value: Any) -> Optional[T]:
        return self.repo(model).get(pk_value)

    def list(
        self,
        model: Type[T],
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[T]:
        return self.repo(model).list(where=where, order_by=order_by, limit=limit)

    def count(self, model: Type[T], where: WhereInput = None) -> int:
        return self.repo(model).count(where=where)

    def insert_graph(
        self,
        model: Type[T],
        graph: GraphInput,
        *,
        allowed: Optional[ExpressionInput] = None,
        hooks: Optional[HooksMap] = None,
        schema_for: Optional[SchemaFactory] = None,
    ) -> GraphResult:
        return self.repo(model).insert_graph(
            graph, allowed=allowed, hooks=hooks, schema_for=schema_for
        )

    def create(
        self,
        model_or_object: Type[T] | T,
        obj: T | None = None,
        *,
        relations: Optional[Dict[str, Any]] = None,
    ) -> T:
        model, resolved_obj = resolve_model_and_obj(model_or_object, obj)
        return self.repo(model).create(resolved_obj, relations=relations)

    def get_related(
        self,
        model: Type[T],
        pk_value: Any,
        *,
        include: ExpressionInput,
    ) -> Optional[RelatedResult[T]]:
        return self.repo(model).get_related(pk_value, include=include)

    def list_related(
        self,
        model: Type[T],
        *,
        include: ExpressionInput,
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[RelatedResult[T]]:
        return self.repo(model).list_related(
            include=include,
            where=where,
            order_by=order_by,
            limit=limit,
        )

    def related(self, parent: T, relation: str) -> RelatedQuery[Any]:
        return self.repo(type(parent)).related(parent, relation)
