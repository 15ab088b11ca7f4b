"""Result wrapper pairing a model object with its related objects."""

from __future__ import annotations

from dataclasses import dataclass, field, is_dataclass
from typing import Any, Dict, Generic, TypeVar

from .models import DataclassModel, to_dict

T = TypeVar("T", bound=DataclassModel)


@dataclass(frozen=True)
class RelatedResult(Generic[T]):
    """One record and its related records, keyed by relation name.

    Relation values are model objects, `RelatedResult` objects when the
    related record carries relations of its own, lists of either for
    to-many relations, or `None`.
    """

    obj: T
    relations: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Flatten into plain dictionaries, relations nested under their names."""

        data = to_dict(self.obj)
        for name, value in self.relations.items():
            data[name] = _plain(value)
        return data


def _plain(value: Any) -> Any:
    if isinstance(value, RelatedResult):
        return value.to_dict()
    if isinstance(value, list):
        return [_plain(item) for item in value]
    if is_dataclass(value) and not isinstance(value, type):
        return to_dict(value)
    return value
