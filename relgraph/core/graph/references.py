"""Symbol table for `#id` declarations and binding of `#ref` edges."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple, Type, Union

from ..metadata import cached_model_metadata
from .errors import ResolutionError
from .literal import NestedEntity

if TYPE_CHECKING:
    from .normalizer import RelationGraph


@dataclass(frozen=True)
class ReferenceEdge:
    """`dependent` needs `column` of `dependency` once that node is inserted.

    When `prop` is set the value is copied into that property of the
    dependent node. Edges without `prop` only order the two nodes; they come
    from string templates, which are rendered separately.
    """

    dependent: int
    dependency: int
    column: str
    prop: Optional[str] = None


@dataclass(frozen=True)
class UnboundEdge:
    """Edge recorded during normalization whose endpoint may still be a symbol.

    `expected` is the model the symbolic endpoint must resolve to.
    """

    dependent: Union[int, str]
    dependency: Union[int, str]
    column: str
    prop: Optional[str] = None
    expected: Optional[Type[Any]] = None


class SymbolTable:
    """Maps `#id` identifiers to the node created for their first declaration."""

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[int, NestedEntity]] = {}

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def declare(self, symbol: str, index: int, entity: NestedEntity) -> None:
        if symbol in self._entries:
            raise ResolutionError(f"Identifier {symbol!r} is already declared.", symbol=symbol)
        self._entries[symbol] = (index, entity)

    def redeclare(self, symbol: str, entity: NestedEntity) -> Tuple[int, bool]:
        """Return the node of an earlier declaration repeated by `entity`.

        A repeat must either be bare (only the `#id`) or carry exactly the
        same content as the declaration with content. The second item of the
        result is true when `entity` supplies the content of a node that so
        far was only declared bare.
        """

        index, first = self._entries[symbol]
        if entity.model is not first.model:
            raise ResolutionError(
                f"Identifier {symbol!r} is declared for both {first.model.__name__} "
                f"and {entity.model.__name__}.",
                symbol=symbol,
            )
        if entity.is_bare:
            return index, False
        if first.is_bare:
            self._entries[symbol] = (index, entity)
            return index, True
        if entity.properties != first.properties or entity.relations != first.relations:
            raise ResolutionError(
                f"Identifier {symbol!r} is declared more than once with different content.",
                symbol=symbol,
            )
        return index, False

    def index(self, symbol: str) -> int:
        entry = self._entries.get(symbol)
        if entry is None:
            raise ResolutionError(f"'#ref' to unknown identifier {symbol!r}.", symbol=symbol)
        return entry[0]

    def lookup(self, symbol: str) -> Optional[int]:
        entry = self._entries.get(symbol)
        return None if entry is None else entry[0]


def resolve(graph: RelationGraph) -> SymbolTable:
    """Bind every symbolic edge endpoint of `graph` to a node index.

    Replaces `graph.unbound` with concrete `graph.edges`.

    Raises:
        ResolutionError: For dangling references, references resolving to a
            node of the wrong model, template placeholders naming unknown
            columns, or one property filled from two different sources.
    """

    symbols = graph.symbols
    edges: List[ReferenceEdge] = []
    sources: Dict[Tuple[int, str], Tuple[int, str]] = {}

    for pending in graph.unbound:
        dependent = _bind(graph, pending.dependent, pending.expected)
        dependency = _bind(graph, pending.dependency, pending.expected)

        target = graph.nodes[dependency]
        if not cached_model_metadata(target.model).has_property(pending.column):
            label = target.symbol or target.model.__name__
            raise ResolutionError(
                f"'#ref' to {label}.{pending.column}: {target.model.__name__} has no "
                f"property {pending.column!r}.",
                symbol=target.symbol,
            )

        if pending.prop is not None:
            key = (dependent, pending.prop)
            source = (dependency, pending.column)
            if key in sources:
                if sources[key] == source:
                    continue
                node = graph.nodes[dependent]
                raise ResolutionError(
                    f"{node.model.__name__}.{pending.prop} is filled by more than one relation.",
                    symbol=node.symbol,
                )
            sources[key] = source

        edges.append(
            ReferenceEdge(
                dependent=dependent,
                dependency=dependency,
                column=pending.column,
                prop=pending.prop,
            )
        )

    graph.edges = edges
    graph.unbound = []
    return symbols


def _bind(graph: RelationGraph, endpoint: Union[int, str], expected: Optional[Type[Any]]) -> int:
    if isinstance(endpoint, int):
        return endpoint

    index = graph.symbols.index(endpoint)
    node = graph.nodes[index]
    if expected is not None and node.model is not expected:
        raise ResolutionError(
            f"'#ref' {endpoint!r} points to a {node.model.__name__}, "
            f"expected {expected.__name__}.",
            symbol=endpoint,
        )
    return index
