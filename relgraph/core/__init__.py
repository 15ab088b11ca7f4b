"""Public core API for models, repositories, sessions and graph inserts."""

from .conditions import C, Condition, OrderBy
from .contracts import LifecycleHooks, SchemaValidator
from .graph import (
    AsyncGraphInserter,
    GraphContext,
    GraphInserter,
    InsertionPlan,
    RelationExpression,
    ResolutionError,
    StorageError,
    prepare_insert,
)
from .metadata import ModelMetadata, build_model_metadata, cached_model_metadata
from .models import (
    DataclassModel,
    RelationSpec,
    RelationType,
    ThroughSpec,
    auto_pk_field,
    model_fields,
    model_relations,
    pk_fields,
    row_to_model,
    table_name,
    to_dict,
)
from .query_builder import WhereInput
from .repository import Repository, UnifiedRepository
from .repository_async import AsyncRepository, AsyncUnifiedRepository
from .repository_relations import RelatedQuery
from .repository_relations_async import AsyncRelatedQuery
from .results import RelatedResult
from .schema import apply_schema, apply_schema_async, create_table_sql
from .session import Session
from .session_async import AsyncSession
from .validated_model import DataclassSchema, ValidatedModel, ValidationError

__all__ = [
    "C",
    "Condition",
    "OrderBy",
    "WhereInput",
    "DataclassModel",
    "ValidatedModel",
    "ValidationError",
    "DataclassSchema",
    "SchemaValidator",
    "LifecycleHooks",
    "ResolutionError",
    "StorageError",
    "RelationSpec",
    "RelationType",
    "ThroughSpec",
    "RelationExpression",
    "ModelMetadata",
    "Repository",
    "UnifiedRepository",
    "AsyncRepository",
    "AsyncUnifiedRepository",
    "RelatedQuery",
    "AsyncRelatedQuery",
    "RelatedResult",
    "Session",
    "AsyncSession",
    "GraphContext",
    "GraphInserter",
    "AsyncGraphInserter",
    "InsertionPlan",
    "prepare_insert",
    "apply_schema",
    "apply_schema_async",
    "auto_pk_field",
    "build_model_metadata",
    "cached_model_metadata",
    "create_table_sql",
    "model_fields",
    "model_relations",
    "pk_fields",
    "row_to_model",
    "table_name",
    "to_dict",
]
