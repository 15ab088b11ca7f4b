"""Relation orchestration for repository graph-insert and eager-load APIs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Generic, Iterable, List, Optional, Sequence, Type, TypeVar

from .conditions import C, OrderBy
from .graph import GraphContext, GraphInserter, RelationExpression, prepare_insert
from .graph.executor import GraphResult, HooksMap
from .graph.relation_expression import ANY, ExpressionInput
from .graph.validation_gate import SchemaFactory
from .metadata import ModelMetadata, cached_model_metadata
from .models import DataclassModel, RelationSpec, RelationType
from .query_builder import WhereInput
from .repository_crud import list_rows
from .results import RelatedResult
from .types import GraphInput

if TYPE_CHECKING:
    from .repository import Repository

T = TypeVar("T", bound=DataclassModel)


class RelationCoordinator(Generic[T]):
    """Encapsulates graph insert and eager-load workflows for one repository."""

    def __init__(self, repo: "Repository[T]") -> None:
        self.repo = repo

    def insert_graph(
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
        return GraphInserter(self.repo.db, hooks=hooks).execute(plan)

    def create(self, obj: T, *, relations: Optional[Dict[str, Any]] = None) -> T:
        """Create one object and optionally its related records as one graph."""

        if not relations:
            return self.repo.insert(obj)
        self.insert_graph(obj, relations=relations)
        return obj

    def get_related(self, pk_value: Any, *, include: ExpressionInput) -> Optional[RelatedResult[T]]:
        obj = self.repo.get(pk_value)
        if obj is None:
            return None
        loaded = self.load(self.repo.model, [obj], RelationExpression.parse(include))
        return RelatedResult(obj=obj, relations=loaded[0])

    def list_related(
        self,
        *,
        include: ExpressionInput,
        where: WhereInput = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[RelatedResult[T]]:
        tree = RelationExpression.parse(include)
        expand_include(self.repo.meta, tree)
        rows = self.repo.list(where=where, order_by=order_by, limit=limit)
        loaded = self.load(self.repo.model, rows, tree)
        return [
            RelatedResult(obj=row, relations=relations)
            for row, relations in zip(rows, loaded, strict=True)
        ]

    def load(
        self,
        model: Type[Any],
        objects: Sequence[Any],
        tree: RelationExpression,
    ) -> List[Dict[str, Any]]:
        """Load the relations named by `tree` for `objects`, recursing into subtrees."""

        meta = cached_model_metadata(model)
        expanded = expand_include(meta, tree)
        results: List[Dict[str, Any]] = [dict() for _ in objects]
        if not objects:
            return results

        for name, subtree in expanded:
            spec = meta.relations[name]
            values = self._fetch(spec, objects)
            if subtree:
                related = distinct_objects(values)
                nested = self.load(spec.model, related, subtree)
                values = wrap_nested(values, related, nested)
            for result, value in zip(results, values, strict=True):
                result[name] = value
        return results

    def _fetch(self, spec: RelationSpec, objects: Sequence[Any]) -> List[Any]:
        db = self.repo.db
        target = cached_model_metadata(spec.model)
        keys = dedupe_non_null(getattr(obj, spec.local_key) for obj in objects)

        if spec.relation_type is RelationType.MANY_TO_MANY:
            assert spec.through is not None
            through = cached_model_metadata(spec.through.model)
            links = []
            if keys:
                links = list_rows(
                    db,
                    through,
                    where=C.in_(spec.through.local_key, keys),
                    order_by=[OrderBy(through.pk)],
                )
            remote_keys = dedupe_non_null(getattr(link, spec.through.remote_key) for link in links)
            rows = []
            if remote_keys:
                rows = list_rows(db, target, where=C.in_(spec.remote_key, remote_keys))
            return attach_many_to_many(spec, objects, links, rows)

        rows = []
        if keys:
            order_by = None
            if spec.relation_type is not RelationType.BELONGS_TO:
                order_by = [OrderBy(spec.remote_key), OrderBy(target.pk)]
            rows = list_rows(db, target, where=C.in_(spec.remote_key, keys), order_by=order_by)
        return attach_rows(spec, objects, rows)


class RelatedQuery(Generic[T]):
    """Operations scoped to one relation of one persisted object.

    `insert_graph()` inserts new related rows and links them to the parent:
    foreign keys are set on the children (`has_many`/`has_one`), join rows
    are inserted (`many_to_many`), or the parent's own key column is updated
    (`belongs_to`).
    """

    def __init__(self, coordinator: RelationCoordinator[Any], parent: Any, relation: str) -> None:
        if not isinstance(parent, coordinator.repo.model):
            raise TypeError(
                f"Parent must be a {coordinator.repo.model.__name__}, got {type(parent).__name__}."
            )
        self._coordinator = coordinator
        self.parent = parent
        self.relation = relation
        self.context = GraphContext(parent=parent, relation=relation)
        self.spec = self.context.spec()

    def insert_graph(
        self,
        literal: GraphInput,
        *,
        allowed: Optional[ExpressionInput] = None,
        hooks: Optional[HooksMap] = None,
        schema_for: Optional[SchemaFactory] = None,
    ) -> GraphResult:
        return self._coordinator.insert_graph(
            literal,
            allowed=allowed,
            hooks=hooks,
            schema_for=schema_for,
            context=self.context,
            model=self.spec.model,
        )

    def list(self, *, include: Optional[ExpressionInput] = None) -> Any:
        """Return the related rows: a list for to-many relations, else one row or `None`."""

        loaded = self._coordinator.load(type(self.parent), [self.parent], self.tree(include))
        return loaded[0][self.relation]

    def tree(self, include: Optional[ExpressionInput]) -> RelationExpression:
        subtree = RelationExpression.parse(include) if include is not None else RelationExpression()
        return RelationExpression(children={self.relation: subtree})


def expand_include(meta: ModelMetadata, tree: RelationExpression) -> List[tuple[str, RelationExpression]]:
    """Resolve `tree`'s top level against `meta`, expanding `*` to every relation.

    Raises:
        ValueError: If a named relation does not exist on the model.
    """

    expanded: Dict[str, RelationExpression] = {}
    for name, subtree in tree.children.items():
        if name == ANY:
            continue
        if name not in meta.relations:
            available = ", ".join(sorted(meta.relations)) or "<none>"
            raise ValueError(
                f"Unknown relation {name!r} on {meta.model.__name__}. Available: {available}"
            )
        expanded[name] = subtree

    wildcard = tree.children.get(ANY)
    if wildcard is not None:
        for name in meta.relations:
            expanded.setdefault(name, wildcard)
    return list(expanded.items())


def attach_rows(spec: RelationSpec, objects: Sequence[Any], rows: Sequence[Any]) -> List[Any]:
    """Distribute fetched rows of a direct relation over their owners."""

    if spec.relation_type is RelationType.BELONGS_TO:
        mapped = {getattr(row, spec.remote_key): row for row in rows}
        return [mapped.get(getattr(obj, spec.local_key)) for obj in objects]

    grouped: Dict[Any, List[Any]] = {}
    for row in rows:
        grouped.setdefault(getattr(row, spec.remote_key), []).append(row)

    if spec.relation_type is RelationType.HAS_ONE:
        return [next(iter(grouped.get(getattr(obj, spec.local_key), [])), None) for obj in objects]
    return [list(grouped.get(getattr(obj, spec.local_key), [])) for obj in objects]


def attach_many_to_many(
    spec: RelationSpec,
    objects: Sequence[Any],
    links: Sequence[Any],
    rows: Sequence[Any],
) -> List[List[Any]]:
    """Distribute rows reached through join rows over their owners, in join order."""

    assert spec.through is not None
    targets = {getattr(row, spec.remote_key): row for row in rows}
    grouped: Dict[Any, List[Any]] = {}
    for link in links:
        target = targets.get(getattr(link, spec.through.remote_key))
        if target is not None:
            grouped.setdefault(getattr(link, spec.through.local_key), []).append(target)
    return [list(grouped.get(getattr(obj, spec.local_key), [])) for obj in objects]


def distinct_objects(values: Iterable[Any]) -> List[Any]:
    """Unique related objects (by identity) across per-owner relation values."""

    seen: set[int] = set()
    found: List[Any] = []
    for value in values:
        items = value if isinstance(value, list) else [value]
        for item in items:
            if item is None or id(item) in seen:
                continue
            seen.add(id(item))
            found.append(item)
    return found


def wrap_nested(
    values: Sequence[Any],
    related: Sequence[Any],
    nested: Sequence[Dict[str, Any]],
) -> List[Any]:
    """Replace related objects with `RelatedResult`s carrying their own relations."""

    wrapped = {
        id(obj): RelatedResult(obj=obj, relations=relations)
        for obj, relations in zip(related, nested, strict=True)
    }

    def wrap(value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, list):
            return [wrapped[id(item)] for item in value]
        return wrapped[id(value)]

    return [wrap(value) for value in values]


def dedupe_non_null(values: Iterable[Any]) -> List[Any]:
    deduped: List[Any] = []
    seen: set[Any] = set()
    for value in values:
        if value is None or value in seen:
            continue
        seen.add(value)
        deduped.append(value)
    return deduped
