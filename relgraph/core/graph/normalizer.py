"""Flattening of a parsed literal into an arena of nodes and reference edges."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Set, Type, Union

from ..metadata import cached_model_metadata
from ..models import RelationSpec, RelationType
from .literal import NestedEntity, ParsedGraph, Reference, Scalar, Template, iter_relation_value
from .references import ReferenceEdge, SymbolTable, UnboundEdge


class NodeStatus(str, Enum):
    """Lifecycle of one node during a graph insert."""

    PENDING = "pending"
    VALIDATED = "validated"
    INSERTED = "inserted"
    FAILED = "failed"


@dataclass(eq=False)
class EntityNode:
    """One row to insert, or an already persisted row the graph hangs off.

    `properties` holds plain values and `Template` placeholders; columns
    filled from other nodes are absent until the node is patched right
    before its insert. `instance` is the model object: the caller's own
    object when one was given, otherwise built at insert time.
    """

    index: int
    model: Type[Any]
    properties: Dict[str, Any] = field(default_factory=dict)
    symbol: Optional[str] = None
    instance: Any = None
    existing: bool = False
    join: bool = False
    status: NodeStatus = NodeStatus.PENDING

    @property
    def label(self) -> str:
        if self.symbol is not None:
            return f"{self.model.__name__} {self.symbol!r}"
        return f"{self.model.__name__} #{self.index}"


@dataclass(frozen=True)
class GraphContext:
    """Persisted `parent` whose `relation` receives the inserted root(s)."""

    parent: Any
    relation: str

    def spec(self) -> RelationSpec:
        model = type(self.parent)
        relations = cached_model_metadata(model).relations
        spec = relations.get(self.relation)
        if spec is None:
            available = ", ".join(sorted(relations)) or "<none>"
            raise ValueError(
                f"Unknown relation {self.relation!r} on {model.__name__}. "
                f"Available: {available}"
            )
        return spec


@dataclass
class RelationGraph:
    """Arena of nodes addressed by index, plus the edges between them.

    `occurrences` maps the literal position of every entity to its node;
    `declared` holds the positions that created a node, as opposed to
    repeated `#id` declarations that reuse one.
    """

    model: Type[Any]
    nodes: List[EntityNode] = field(default_factory=list)
    symbols: SymbolTable = field(default_factory=SymbolTable)
    unbound: List[UnboundEdge] = field(default_factory=list)
    edges: List[ReferenceEdge] = field(default_factory=list)
    occurrences: Dict[int, int] = field(default_factory=dict)
    declared: Set[int] = field(default_factory=set)

    def incoming(self, index: int) -> Iterator[ReferenceEdge]:
        """Edges through which node `index` receives values."""

        return (edge for edge in self.edges if edge.dependent == index)

    def pending_properties(self, index: int) -> FrozenSet[str]:
        """Properties of node `index` that are only known after other inserts."""

        names = {edge.prop for edge in self.incoming(index) if edge.prop is not None}
        names.update(
            name
            for name, value in self.nodes[index].properties.items()
            if isinstance(value, Template)
        )
        return frozenset(names)

    def node_for(self, entity: NestedEntity) -> EntityNode:
        return self.nodes[self.occurrences[entity.position]]


def normalize(parsed: ParsedGraph, *, context: Optional[GraphContext] = None) -> RelationGraph:
    """Flatten `parsed` into a `RelationGraph` with symbolic edges still unbound.

    Repeated `#id` declarations and repeated caller instances collapse onto
    the node of their first occurrence. With a `context`, the persisted
    parent joins the arena as an existing node linked to every root.
    """

    return _Normalizer(parsed.model).run(parsed, context)


class _Normalizer:
    def __init__(self, model: Type[Any]) -> None:
        self.graph = RelationGraph(model=model)
        self._instances: Dict[int, int] = {}

    def run(self, parsed: ParsedGraph, context: Optional[GraphContext]) -> RelationGraph:
        parent: Optional[int] = None
        spec: Optional[RelationSpec] = None
        if context is not None:
            spec = context.spec()
            if spec.model is not parsed.model:
                raise TypeError(
                    f"Relation {context.relation!r} holds {spec.model.__name__}, "
                    f"not {parsed.model.__name__}."
                )
            if not spec.many and len(parsed.roots) > 1:
                raise ValueError(f"Relation {context.relation!r} holds a single object.")
            parent = self._existing(context.parent, spec)

        for root in parsed.roots:
            index = self._visit(root)
            if parent is not None and spec is not None:
                self._link(parent, spec, index)
        return self.graph

    def _existing(self, parent: Any, spec: RelationSpec) -> int:
        meta = cached_model_metadata(type(parent))
        key = meta.pk if spec.relation_type is RelationType.BELONGS_TO else spec.local_key
        if getattr(parent, key) is None:
            raise ValueError(
                f"{type(parent).__name__}.{key} is not set; insert the parent object first."
            )
        node = self._add(type(parent), instance=parent, existing=True)
        node.status = NodeStatus.INSERTED
        return node.index

    def _visit(self, entity: NestedEntity) -> int:
        graph = self.graph

        if entity.symbol is not None and entity.symbol in graph.symbols:
            index, fills = graph.symbols.redeclare(entity.symbol, entity)
            graph.occurrences[entity.position] = index
            if fills:
                # A bare `#id` came first; this occurrence carries the content.
                graph.declared.add(entity.position)
                self._fill(graph.nodes[index], entity)
            return index
        if entity.instance is not None and id(entity.instance) in self._instances:
            index = self._instances[id(entity.instance)]
            graph.occurrences[entity.position] = index
            return index

        node = self._add(entity.model, symbol=entity.symbol)
        if entity.symbol is not None:
            graph.symbols.declare(entity.symbol, node.index, entity)
        graph.occurrences[entity.position] = node.index
        graph.declared.add(entity.position)
        self._fill(node, entity)
        return node.index

    def _fill(self, node: EntityNode, entity: NestedEntity) -> None:
        graph = self.graph
        node.properties = {
            name: value.value if isinstance(value, Scalar) else value
            for name, value in entity.properties.items()
        }
        if entity.instance is not None:
            node.instance = entity.instance
            self._instances[id(entity.instance)] = node.index

        for value in entity.properties.values():
            if not isinstance(value, Template):
                continue
            for symbol, column in value.refs:
                graph.unbound.append(UnboundEdge(node.index, symbol, column))

        relations = cached_model_metadata(entity.model).relations
        for name, value in entity.relations.items():
            spec = relations[name]
            for child in iter_relation_value(value):
                if isinstance(child, Reference):
                    self._link(node.index, spec, child.symbol, expected=child.model)
                else:
                    self._link(node.index, spec, self._visit(child))

    def _link(
        self,
        owner: int,
        spec: RelationSpec,
        target: Union[int, str],
        *,
        expected: Optional[Type[Any]] = None,
    ) -> None:
        unbound = self.graph.unbound
        if spec.relation_type is RelationType.BELONGS_TO:
            unbound.append(
                UnboundEdge(owner, target, spec.remote_key, prop=spec.local_key, expected=expected)
            )
        elif spec.relation_type is RelationType.MANY_TO_MANY:
            assert spec.through is not None
            join = self._add(spec.through.model, join=True)
            unbound.append(
                UnboundEdge(join.index, owner, spec.local_key, prop=spec.through.local_key)
            )
            unbound.append(
                UnboundEdge(
                    join.index,
                    target,
                    spec.remote_key,
                    prop=spec.through.remote_key,
                    expected=expected,
                )
            )
        else:
            unbound.append(
                UnboundEdge(target, owner, spec.local_key, prop=spec.remote_key, expected=expected)
            )

    def _add(self, model: Type[Any], **kwargs: Any) -> EntityNode:
        node = EntityNode(index=len(self.graph.nodes), model=model, **kwargs)
        self.graph.nodes.append(node)
        return node
