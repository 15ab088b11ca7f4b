"""Graph insertion: nested literals with `#id` / `#ref` markers inserted atomically."""

from .errors import ResolutionError, StorageError
from .executor import AsyncGraphInserter, GraphInserter
from .literal import ParsedGraph, parse_graph, relation_paths
from .normalizer import EntityNode, GraphContext, NodeStatus, RelationGraph, normalize
from .planner import plan_batches
from .prepare import InsertionPlan, prepare_insert
from .references import ReferenceEdge, SymbolTable, resolve
from .relation_expression import RelationExpression, check_allowed
from .validation_gate import schema_for_model, validate_all

__all__ = [
    "AsyncGraphInserter",
    "EntityNode",
    "GraphContext",
    "GraphInserter",
    "InsertionPlan",
    "NodeStatus",
    "ParsedGraph",
    "ReferenceEdge",
    "RelationExpression",
    "RelationGraph",
    "ResolutionError",
    "StorageError",
    "SymbolTable",
    "check_allowed",
    "normalize",
    "parse_graph",
    "plan_batches",
    "prepare_insert",
    "relation_paths",
    "resolve",
    "schema_for_model",
    "validate_all",
]
