"""Everything a graph insert decides before touching the database."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Type

from .literal import ParsedGraph, parse_graph, relation_paths
from .normalizer import GraphContext, RelationGraph, normalize
from .planner import plan_batches
from .references import resolve
from .relation_expression import ExpressionInput, check_allowed
from .validation_gate import SchemaFactory, validate_all

logger = logging.getLogger(__name__)


@dataclass
class InsertionPlan:
    """Validated graph and the batches to insert it in."""

    parsed: ParsedGraph
    graph: RelationGraph
    batches: List[List[int]]

    @property
    def order(self) -> List[int]:
        return [index for batch in self.batches for index in batch]


def prepare_insert(
    model: Type[Any],
    literal: Any,
    *,
    allowed: Optional[ExpressionInput] = None,
    relations: Optional[Mapping[str, Any]] = None,
    context: Optional[GraphContext] = None,
    schema_for: Optional[SchemaFactory] = None,
) -> InsertionPlan:
    """Parse, check, resolve, order and validate a graph literal.

    Steps run in this order and each can abort the insert: literal shape
    (`TypeError`), allow-list (`ValidationError`), reference resolution
    and cycles (`ResolutionError`), node validation (`ValidationError`).
    """

    parsed = parse_graph(model, literal, relations=relations)
    check_allowed(relation_paths(parsed), allowed)
    graph = normalize(parsed, context=context)
    resolve(graph)
    batches = plan_batches(graph)
    validate_all(graph, schema_for=schema_for)

    logger.debug(
        "planned %s graph insert: %d nodes, %d edges, %d batches",
        model.__name__,
        len(graph.nodes),
        len(graph.edges),
        len(batches),
    )
    return InsertionPlan(parsed=parsed, graph=graph, batches=batches)
