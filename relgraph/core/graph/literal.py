"""Parsing of insertion literals into tagged nodes.

An insertion literal is a tree of mappings (or dataclass instances) whose keys
are either model properties or relation names. Markers are extracted here,
exactly once, so later stages never inspect raw strings again:

- `"#id": "name"` declares a symbolic identifier for the enclosing node.
- `{"#ref": "name"}` stands for a node declared elsewhere in the literal.
- `"#ref{name.column}"` inside a string property is a placeholder for a
  column value of another node, known only once that node is inserted.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, is_dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Type, Union

from ..metadata import cached_model_metadata
from ..models import RelationSpec, model_fields
from .errors import ResolutionError

ID_KEY = "#id"
REF_KEY = "#ref"
_TEMPLATE_RE = re.compile(r"#ref\{([^.{}]+)\.([^{}]+)\}")


@dataclass(frozen=True)
class Scalar:
    """Plain property value, stored as given."""

    value: Any


@dataclass(frozen=True)
class Template:
    """String property holding one or more `#ref{id.column}` placeholders.

    A string that is exactly one placeholder resolves to the referenced value
    itself, keeping its type. Placeholders embedded in longer text are
    interpolated as strings.
    """

    text: str
    refs: Tuple[Tuple[str, str], ...]

    @property
    def whole(self) -> bool:
        return _TEMPLATE_RE.fullmatch(self.text) is not None

    def render(self, lookup: Callable[[str, str], Any]) -> Any:
        if self.whole:
            return lookup(*self.refs[0])
        return _TEMPLATE_RE.sub(lambda m: str(lookup(m.group(1), m.group(2))), self.text)


@dataclass(frozen=True)
class Reference:
    """`{"#ref": symbol}` node standing for an entity declared elsewhere."""

    symbol: str
    model: Type[Any]


@dataclass
class NestedEntity:
    """One entity to insert, with its properties and nested relation values.

    `position` is the pre-order index of the entity in the literal and
    `instance` the caller's dataclass object when one was given instead of a
    mapping. Neither takes part in equality.
    """

    model: Type[Any]
    properties: Dict[str, PropertyValue] = field(default_factory=dict)
    relations: Dict[str, RelationValue] = field(default_factory=dict)
    symbol: Optional[str] = None
    instance: Any = field(default=None, compare=False)
    position: int = field(default=0, compare=False)

    @property
    def is_bare(self) -> bool:
        return not self.properties and not self.relations


@dataclass
class NestedCollection:
    """Value of a to-many relation."""

    items: List[Union[NestedEntity, Reference]]


PropertyValue = Union[Scalar, Template]
RelationValue = Union[NestedEntity, Reference, NestedCollection, None]


@dataclass
class ParsedGraph:
    """Parsed literal: one or many root entities."""

    model: Type[Any]
    roots: List[NestedEntity]
    many: bool = False

    def entities(self) -> Iterator[NestedEntity]:
        """Yield every entity occurrence in pre-order."""

        stack = list(reversed(self.roots))
        while stack:
            entity = stack.pop()
            yield entity
            children = [
                child
                for value in entity.relations.values()
                for child in iter_relation_value(value)
                if isinstance(child, NestedEntity)
            ]
            stack.extend(reversed(children))


def parse_graph(
    model: Type[Any],
    raw: Any,
    *,
    relations: Optional[Mapping[str, Any]] = None,
) -> ParsedGraph:
    """Parse an insertion literal rooted at `model`.

    Args:
        model: Dataclass model of the root node(s).
        raw: Mapping, dataclass instance, or a sequence of those.
        relations: Relation values for a single instance root, used when the
            caller passes an object and its related objects separately.

    Raises:
        TypeError: If a node or relation value has the wrong shape.
        ResolutionError: If a marker is malformed.
    """

    parser = _LiteralParser()
    if _is_sequence(raw):
        if relations:
            raise TypeError("relations can only be given for a single root object.")
        roots = [parser.root(model, item, path=f"{model.__name__}[{i}]") for i, item in enumerate(raw)]
        return ParsedGraph(model=model, roots=roots, many=True)

    root = parser.root(model, raw, path=model.__name__, relations=relations)
    return ParsedGraph(model=model, roots=[root])


def iter_relation_value(value: RelationValue) -> Iterator[Union[NestedEntity, Reference]]:
    if value is None:
        return
    if isinstance(value, NestedCollection):
        yield from value.items
        return
    yield value


def relation_paths(graph: ParsedGraph) -> List[Tuple[str, ...]]:
    """Return every relation path the literal actually populates."""

    paths: List[Tuple[str, ...]] = []

    def walk(entity: NestedEntity, prefix: Tuple[str, ...]) -> None:
        for name, value in entity.relations.items():
            items = list(iter_relation_value(value))
            if not items:
                continue
            path = prefix + (name,)
            if path not in paths:
                paths.append(path)
            for child in items:
                if isinstance(child, NestedEntity):
                    walk(child, path)

    for root in graph.roots:
        walk(root, ())
    return paths


class _LiteralParser:
    def __init__(self) -> None:
        self._position = 0

    def root(
        self,
        model: Type[Any],
        raw: Any,
        *,
        path: str,
        relations: Optional[Mapping[str, Any]] = None,
    ) -> NestedEntity:
        node = self.entity(model, raw, path=path, relations=relations)
        if isinstance(node, Reference):
            raise ResolutionError(
                f"{path}: a root node cannot be a '#ref' to {node.symbol!r}.",
                symbol=node.symbol,
            )
        return node

    def entity(
        self,
        model: Type[Any],
        raw: Any,
        *,
        path: str,
        relations: Optional[Mapping[str, Any]] = None,
    ) -> Union[NestedEntity, Reference]:
        meta = cached_model_metadata(model)

        if is_dataclass(raw) and not isinstance(raw, type):
            if not isinstance(raw, model):
                raise TypeError(
                    f"{path} expects {model.__name__}, got {type(raw).__name__}."
                )
            node = NestedEntity(model=model, instance=raw, position=self._next())
            for model_field in model_fields(model):
                value = getattr(raw, model_field.name)
                if model_field.name == meta.auto_pk and value is None:
                    continue
                node.properties[model_field.name] = self.property(value)
            for name, value in (relations or {}).items():
                spec = meta.relations.get(name)
                if spec is None:
                    raise ValueError(f"Unknown relation {name!r} on {model.__name__}.")
                node.relations[name] = self.relation(spec, value, path=f"{path}.{name}")
            return node

        if not isinstance(raw, Mapping):
            raise TypeError(
                f"{path} expects a mapping or {model.__name__} instance, "
                f"got {type(raw).__name__}."
            )

        if REF_KEY in raw:
            extra = sorted(str(key) for key in raw if key != REF_KEY)
            if extra:
                raise ResolutionError(
                    f"{path}: a '#ref' node cannot declare other keys ({', '.join(extra)})."
                )
            return Reference(symbol=self._symbol(raw[REF_KEY], path, REF_KEY), model=model)

        node = NestedEntity(model=model, position=self._next())
        for key, value in raw.items():
            if key == ID_KEY:
                node.symbol = self._symbol(value, path, ID_KEY)
                continue
            if not isinstance(key, str):
                raise TypeError(f"{path}: property names must be strings, got {key!r}.")
            if key.startswith("#"):
                raise ResolutionError(f"{path}: unknown marker {key!r}.")

            spec = meta.relations.get(key)
            if spec is not None:
                node.relations[key] = self.relation(spec, value, path=f"{path}.{key}")
            else:
                node.properties[key] = self.property(value)
        return node

    def relation(self, spec: RelationSpec, raw: Any, *, path: str) -> RelationValue:
        if raw is None:
            return None
        if not spec.many:
            return self.entity(spec.model, raw, path=path)

        if not _is_sequence(raw):
            raise TypeError(
                f"Relation {path!r} expects a sequence of {spec.model.__name__} nodes."
            )
        return NestedCollection(
            items=[
                self.entity(spec.model, item, path=f"{path}[{index}]")
                for index, item in enumerate(raw)
            ]
        )

    def property(self, value: Any) -> PropertyValue:
        if isinstance(value, str):
            refs = tuple((m.group(1), m.group(2)) for m in _TEMPLATE_RE.finditer(value))
            if refs:
                return Template(text=value, refs=refs)
        return Scalar(value)

    def _next(self) -> int:
        position = self._position
        self._position += 1
        return position

    def _symbol(self, value: Any, path: str, marker: str) -> str:
        if not isinstance(value, str) or not value:
            raise ResolutionError(f"{path}: {marker!r} must be a non-empty string.")
        return value


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))
