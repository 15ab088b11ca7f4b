"""Execution of an `InsertionPlan` inside one database transaction.

Nodes are inserted batch by batch. Right before its insert each node is
patched with the keys of the nodes it depends on, turned into a model
object, and passed through the model's lifecycle hooks. Any failure rolls
back the whole graph.
"""

from __future__ import annotations

import logging
from dataclasses import MISSING
from typing import Any, Dict, List, Mapping, Optional, Set, Type, Union

from .. import repository_crud, repository_crud_async
from .._async_utils import _maybe_await
from ..contracts import AsyncDatabasePort, DatabasePort, LifecycleHooks
from ..metadata import cached_model_metadata
from ..models import field_default, model_fields
from ..results import RelatedResult
from .errors import StorageError
from .literal import NestedCollection, NestedEntity, Reference, Template
from .normalizer import EntityNode, NodeStatus
from .prepare import InsertionPlan

logger = logging.getLogger(__name__)

HooksMap = Mapping[Type[Any], LifecycleHooks]
GraphResult = Union[RelatedResult[Any], List[RelatedResult[Any]]]


class _PlanRun:
    """Per-execution state shared by the sync and async inserters."""

    def __init__(self, plan: InsertionPlan, hooks: Optional[HooksMap]) -> None:
        self.plan = plan
        self.graph = plan.graph
        self._hooks = dict(hooks or {})
        self._patched: Dict[int, Set[str]] = {}
        # Caller objects as they were before the run, restored on rollback.
        self._saved = {
            node.index: {f.name: getattr(node.instance, f.name) for f in model_fields(node.model)}
            for node in self.graph.nodes
            if node.instance is not None
        }

    def hooks_for(self, model: Type[Any]) -> Optional[LifecycleHooks]:
        if model in self._hooks:
            return self._hooks[model]
        return getattr(model, "__hooks__", None)

    def hook(self, model: Type[Any], name: str) -> Any:
        hooks = self.hooks_for(model)
        method = getattr(hooks, name, None) if hooks is not None else None
        return method if callable(method) else None

    def patch(self, node: EntityNode) -> Dict[str, Any]:
        """Fill relation keys and render templates now that dependencies exist."""

        patched: Dict[str, Any] = {}
        for edge in self.graph.incoming(node.index):
            if edge.prop is not None:
                patched[edge.prop] = self.value(edge.dependency, edge.column)
        for name, value in node.properties.items():
            if isinstance(value, Template):
                patched[name] = value.render(self.lookup)
        node.properties.update(patched)
        self._patched.setdefault(node.index, set()).update(patched)
        return patched

    def value(self, index: int, column: str) -> Any:
        return getattr(self.graph.nodes[index].instance, column)

    def lookup(self, symbol: str, column: str) -> Any:
        return self.value(self.graph.symbols.index(symbol), column)

    def materialize(self, node: EntityNode) -> Any:
        if node.instance is None:
            node.instance = node.model(**node.properties)
        else:
            for name, value in node.properties.items():
                setattr(node.instance, name, value)
        return node.instance

    def storage_error(self, node: EntityNode, exc: Exception) -> StorageError:
        node.status = NodeStatus.FAILED
        return StorageError(f"Inserting {node.label} failed: {exc}", model=node.model)

    def restore(self) -> None:
        """Undo generated keys and patched columns after a rollback.

        Caller objects get every field back as it was before the run. Objects
        built during the run lose their generated key and patched columns.
        """

        for node in self.graph.nodes:
            if node.instance is None:
                continue
            saved = self._saved.get(node.index)
            if saved is not None:
                for name, value in saved.items():
                    setattr(node.instance, name, value)
                continue

            names = set(self._patched.get(node.index, ()))
            auto_pk = cached_model_metadata(node.model).auto_pk
            if auto_pk is not None:
                names.add(auto_pk)
            for model_field in model_fields(node.model):
                if model_field.name in names:
                    default = field_default(model_field)
                    setattr(node.instance, model_field.name, None if default is MISSING else default)

    def strip_transient(self) -> None:
        """Reset transient fields of every inserted object to their defaults."""

        for node in self.graph.nodes:
            if node.existing or node.instance is None:
                continue
            if not cached_model_metadata(node.model).transient:
                continue
            for model_field in model_fields(node.model):
                if not model_field.metadata.get("transient"):
                    continue
                default = field_default(model_field)
                setattr(node.instance, model_field.name, None if default is MISSING else default)

    def result(self) -> GraphResult:
        roots = [self._rehydrate(root) for root in self.plan.parsed.roots]
        return roots if self.plan.parsed.many else roots[0]

    def _rehydrate(self, entity: NestedEntity) -> RelatedResult[Any]:
        obj = self.graph.node_for(entity).instance
        if entity.position not in self.graph.declared:
            return RelatedResult(obj=obj, relations={})

        relations: Dict[str, Any] = {}
        for name, value in entity.relations.items():
            if value is None:
                relations[name] = None
            elif isinstance(value, NestedCollection):
                relations[name] = [self._rehydrate_item(item) for item in value.items]
            else:
                relations[name] = self._rehydrate_item(value)
        return RelatedResult(obj=obj, relations=relations)

    def _rehydrate_item(self, item: Union[NestedEntity, Reference]) -> RelatedResult[Any]:
        if isinstance(item, Reference):
            node = self.graph.nodes[self.graph.symbols.index(item.symbol)]
            return RelatedResult(obj=node.instance, relations={})
        return self._rehydrate(item)


class GraphInserter:
    """Runs insertion plans against a `DatabasePort`.

    Args:
        db: Database adapter; its `transaction()` scope wraps the whole graph.
        hooks: Lifecycle hooks per model class; models without an entry fall
            back to their `__hooks__` attribute.
    """

    def __init__(self, db: DatabasePort, *, hooks: Optional[HooksMap] = None) -> None:
        self.db = db
        self.hooks = hooks

    def execute(self, plan: InsertionPlan) -> GraphResult:
        run = _PlanRun(plan, self.hooks)
        model_name = plan.graph.model.__name__
        try:
            with self.db.transaction():
                for number, batch in enumerate(plan.batches):
                    logger.debug("%s graph batch %d: %d nodes", model_name, number, len(batch))
                    for index in batch:
                        node = plan.graph.nodes[index]
                        if node.existing:
                            self._update_existing(run, node)
                        else:
                            self._insert(run, node)
        except Exception as exc:
            logger.warning("graph insert of %s rolled back: %s", model_name, exc)
            run.restore()
            raise

        run.strip_transient()
        return run.result()

    def _insert(self, run: _PlanRun, node: EntityNode) -> None:
        run.patch(node)
        obj = run.materialize(node)

        before = run.hook(node.model, "before_insert")
        if before is not None:
            before(obj)

        try:
            repository_crud.insert_row(self.db, cached_model_metadata(node.model), obj)
        except Exception as exc:
            raise run.storage_error(node, exc) from exc
        node.status = NodeStatus.INSERTED

        after = run.hook(node.model, "after_insert")
        if after is not None:
            after(obj)

    def _update_existing(self, run: _PlanRun, node: EntityNode) -> None:
        values = run.patch(node)
        obj = run.materialize(node)
        meta = cached_model_metadata(node.model)
        try:
            repository_crud.update_columns(self.db, meta, getattr(obj, meta.pk), values)
        except Exception as exc:
            raise run.storage_error(node, exc) from exc


class AsyncGraphInserter:
    """Async counterpart of `GraphInserter`; hooks may return awaitables."""

    def __init__(self, db: AsyncDatabasePort, *, hooks: Optional[HooksMap] = None) -> None:
        self.db = db
        self.hooks = hooks

    async def execute(self, plan: InsertionPlan) -> GraphResult:
        run = _PlanRun(plan, self.hooks)
        model_name = plan.graph.model.__name__
        try:
            async with self.db.transaction():
                for number, batch in enumerate(plan.batches):
                    logger.debug("%s graph batch %d: %d nodes", model_name, number, len(batch))
                    for index in batch:
                        node = plan.graph.nodes[index]
                        if node.existing:
                            await self._update_existing(run, node)
                        else:
                            await self._insert(run, node)
        except Exception as exc:
            logger.warning("graph insert of %s rolled back: %s", model_name, exc)
            run.restore()
            raise

        run.strip_transient()
        return run.result()

    async def _insert(self, run: _PlanRun, node: EntityNode) -> None:
        run.patch(node)
        obj = run.materialize(node)

        before = run.hook(node.model, "before_insert")
        if before is not None:
            await _maybe_await(before(obj))

        try:
            await repository_crud_async.insert_row(
                self.db, cached_model_metadata(node.model), obj
            )
        except Exception as exc:
            raise run.storage_error(node, exc) from exc
        node.status = NodeStatus.INSERTED

        after = run.hook(node.model, "after_insert")
        if after is not None:
            await _maybe_await(after(obj))

    async def _update_existing(self, run: _PlanRun, node: EntityNode) -> None:
        values = run.patch(node)
        obj = run.materialize(node)
        meta = cached_model_metadata(node.model)
        try:
            await repository_crud_async.update_columns(self.db, meta, getattr(obj, meta.pk), values)
        except Exception as exc:
            raise run.storage_error(node, exc) from exc
