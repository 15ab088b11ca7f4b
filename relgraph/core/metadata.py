"""Model metadata extraction used by repository SQL generation and graph planning."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Type

from .models import (
    DataclassModel,
    RelationSpec,
    auto_pk_field,
    column_fields,
    model_fields,
    model_relations,
    pk_fields,
    table_name,
)


@dataclass(frozen=True)
class ModelMetadata:
    """Normalized model description used by repository operations."""

    model: Type[Any]
    table: str
    pk: str
    auto_pk: Optional[str]
    columns: List[str]
    writable_columns: List[str]
    transient: List[str]
    relations: Dict[str, RelationSpec]

    def has_property(self, name: str) -> bool:
        """Return whether `name` is a column or transient field of the model."""

        return name in self.columns or name in self.transient


def build_model_metadata(model: Type[DataclassModel]) -> ModelMetadata:
    """Build model metadata from dataclass annotations and field metadata.

    Args:
        model: Dataclass model type.

    Returns:
        Immutable metadata object used by `Repository` and the graph inserter.

    Raises:
        ValueError: If model has zero or multiple primary key fields.
    """

    pks = pk_fields(model)
    if len(pks) != 1:
        raise ValueError("relgraph supports exactly 1 PK field.")

    pk_name = pks[0].name
    auto_pk = auto_pk_field(model)
    auto_pk_name = auto_pk.name if auto_pk else None
    all_columns = [field.name for field in column_fields(model)]
    writable_columns = [name for name in all_columns if name != pk_name]
    transient = [f.name for f in model_fields(model) if f.metadata.get("transient")]

    return ModelMetadata(
        model=model,
        table=table_name(model),
        pk=pk_name,
        auto_pk=auto_pk_name,
        columns=all_columns,
        writable_columns=writable_columns,
        transient=transient,
        relations=model_relations(model),
    )


@lru_cache(maxsize=None)
def cached_model_metadata(model: Type[DataclassModel]) -> ModelMetadata:
    """Memoized `build_model_metadata` for hot paths such as graph parsing.

    Relation specs are read once per model class; models must declare
    `__relations__` before the first graph insert touches them.
    """

    return build_model_metadata(model)
