"""Validation of every graph node before the first insert is issued."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Type

from ..contracts import SchemaValidator
from ..validated_model import DataclassSchema, ValidationError
from .normalizer import NodeStatus, RelationGraph

logger = logging.getLogger(__name__)

SchemaFactory = Callable[[Type[Any]], Optional[SchemaValidator]]


def schema_for_model(model: Type[Any], schema_for: Optional[SchemaFactory] = None) -> SchemaValidator:
    """Pick the validator for `model`.

    Order: the `schema_for` callable, then the model's `__schema__`
    attribute (a validator object, or a class called with the model), then
    `DataclassSchema`.
    """

    if schema_for is not None:
        schema = schema_for(model)
        if schema is not None:
            return schema

    declared = getattr(model, "__schema__", None)
    if isinstance(declared, type):
        return declared(model)
    if declared is not None:
        return declared
    return DataclassSchema(model)


def validate_all(graph: RelationGraph, *, schema_for: Optional[SchemaFactory] = None) -> None:
    """Validate each node to insert, in traversal order.

    Placeholder properties (relation-filled keys and `#ref` templates) are
    passed as `pending` and exempt from checks.

    Raises:
        ValidationError: For the first node with violations; nothing has been
            written at that point.
    """

    schemas: dict[Type[Any], SchemaValidator] = {}
    for node in graph.nodes:
        if node.existing:
            continue
        schema = schemas.get(node.model)
        if schema is None:
            schema = schemas[node.model] = schema_for_model(node.model, schema_for)

        errors = schema.validate(node.properties, pending=graph.pending_properties(node.index))
        if errors:
            node.status = NodeStatus.FAILED
            logger.debug("validation failed for %s: %s", node.label, errors)
            raise ValidationError(data=errors, model=node.model)
        node.status = NodeStatus.VALIDATED
