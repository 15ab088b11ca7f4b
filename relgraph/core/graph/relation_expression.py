"""Relation expressions: trees of relation names such as `[children.pets, parent]`.

Used both as the allow-list of relation paths a graph insert may populate and
as the include tree for eager loading. Accepted syntax:

- `a.b.c` for a single path,
- `[a.b, c]` for several paths,
- `a.[b, c]` for branching below a common prefix,
- `*` to match any relation name at its level.

A sequence of such strings is merged into one tree.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..validated_model import ValidationError

ANY = "*"
_TOKEN_RE = re.compile(r"\s*(?:([A-Za-z_][A-Za-z0-9_]*|\*)|(\S))")

ExpressionInput = Union[str, Sequence[str], "RelationExpression"]


@dataclass
class RelationExpression:
    """Tree of relation names; the root itself is unnamed."""

    children: Dict[str, "RelationExpression"] = field(default_factory=dict)

    @classmethod
    def parse(cls, expression: ExpressionInput) -> "RelationExpression":
        """Parse a string, a sequence of strings or an existing expression."""

        if isinstance(expression, RelationExpression):
            return expression
        if isinstance(expression, str):
            return _Parser(expression).parse()
        if isinstance(expression, (bytes, bytearray)) or not isinstance(expression, Sequence):
            raise TypeError(
                "relation expression must be a string or a sequence of strings, "
                f"got {type(expression).__name__}."
            )

        merged = cls()
        for item in expression:
            if not isinstance(item, str):
                raise TypeError("relation expression items must be strings.")
            merged.merge(_Parser(item).parse())
        return merged

    def merge(self, other: "RelationExpression") -> "RelationExpression":
        for name, subtree in other.children.items():
            self.children.setdefault(name, RelationExpression()).merge(subtree)
        return self

    def child(self, name: str) -> Optional["RelationExpression"]:
        """Return the subtree for `name`, falling back to a `*` entry."""

        found = self.children.get(name)
        if found is None:
            found = self.children.get(ANY)
        return found

    def contains_path(self, path: Sequence[str]) -> bool:
        node: Optional[RelationExpression] = self
        for name in path:
            assert node is not None
            node = node.child(name)
            if node is None:
                return False
        return True

    def paths(self) -> List[Tuple[str, ...]]:
        """Return every leaf path of the tree."""

        found: List[Tuple[str, ...]] = []
        for name, subtree in self.children.items():
            if not subtree.children:
                found.append((name,))
                continue
            found.extend((name,) + rest for rest in subtree.paths())
        return found

    def __bool__(self) -> bool:
        return bool(self.children)

    def __str__(self) -> str:
        parts = []
        for name, subtree in self.children.items():
            parts.append(name if not subtree.children else f"{name}.{subtree}")
        if len(parts) == 1:
            return parts[0]
        return "[" + ", ".join(parts) + "]"


def check_allowed(
    paths: Iterable[Sequence[str]],
    allowed: Optional[ExpressionInput],
) -> None:
    """Reject relation paths not contained in the `allowed` expression.

    `None` allows every path.

    Raises:
        ValidationError: Naming the first disallowed path under the
            `allowed_relations` key of `data`.
    """

    if allowed is None:
        return
    tree = RelationExpression.parse(allowed)
    for path in paths:
        if not tree.contains_path(path):
            dotted = ".".join(path)
            raise ValidationError(
                f"Relation path {dotted!r} is not allowed by {str(tree)!r}.",
                data={"allowed_relations": f"Relation path {dotted!r} is not allowed."},
            )


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = self._tokenize(text)
        self.pos = 0

    def parse(self) -> RelationExpression:
        root = RelationExpression()
        if not self.tokens:
            return root
        root.children.update(self._item())
        if self.pos != len(self.tokens):
            self._fail(f"unexpected {self.tokens[self.pos]!r}")
        return root

    def _item(self) -> Dict[str, RelationExpression]:
        if self._peek() == "[":
            return self._list()

        name = self._take()
        if name is None or not _is_name(name):
            self._fail("expected a relation name")
        node = RelationExpression()
        if self._peek() == ".":
            self.pos += 1
            node.children.update(self._item())
        return {name: node}

    def _list(self) -> Dict[str, RelationExpression]:
        self.pos += 1
        merged = RelationExpression()
        while True:
            merged.merge(RelationExpression(children=self._item()))
            token = self._take()
            if token == "]":
                return merged.children
            if token != ",":
                self._fail("expected ',' or ']'")

    def _peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self) -> Optional[str]:
        token = self._peek()
        if token is not None:
            self.pos += 1
        return token

    def _fail(self, reason: str) -> None:
        raise ValueError(f"Invalid relation expression {self.text!r}: {reason}.")

    def _tokenize(self, text: str) -> List[str]:
        tokens = []
        for match in _TOKEN_RE.finditer(text):
            name, symbol = match.groups()
            if name is not None:
                tokens.append(name)
            elif symbol is not None:
                if symbol not in "[].,":
                    self._fail(f"unexpected character {symbol!r}")
                tokens.append(symbol)
        return tokens


def _is_name(token: str) -> bool:
    return token == ANY or token[0].isalpha() or token[0] == "_"
