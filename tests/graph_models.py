from __future__ import annotations

import unittest
from dataclasses import dataclass, field
from typing import Any, Optional

from relgraph import RelatedResult


@dataclass
class Model1:
    __table__ = "model1"

    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    model1_id: Optional[int] = None
    model1_prop1: Optional[str] = None
    model1_prop2: Optional[int] = None
    model1_virtual: Optional[str] = field(default=None, metadata={"transient": True})


@dataclass
class Model2:
    __table__ = "model_2"

    id_col: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    model_1_id: Optional[int] = None
    model2_prop1: Optional[str] = None
    model2_prop2: Optional[int] = None


@dataclass
class Model1Model2:
    __table__ = "model_1_model_2"

    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    model1_id: Optional[int] = None
    model2_id: Optional[int] = None


Model1.__relations__ = {
    "model1_relation1": {
        "model": Model1,
        "local_key": "model1_id",
        "remote_key": "id",
        "type": "belongs_to",
    },
    "model1_relation2": {
        "model": Model2,
        "local_key": "id",
        "remote_key": "model_1_id",
        "type": "has_many",
    },
    "model1_relation3": {
        "model": Model2,
        "local_key": "id",
        "remote_key": "id_col",
        "type": "many_to_many",
        "through": {
            "model": Model1Model2,
            "local_key": "model1_id",
            "remote_key": "model2_id",
        },
    },
}

Model2.__relations__ = {
    "model2_relation1": {
        "model": Model1,
        "local_key": "id_col",
        "remote_key": "id",
        "type": "many_to_many",
        "through": {
            "model": Model1Model2,
            "local_key": "model2_id",
            "remote_key": "model1_id",
        },
    },
}

GRAPH_MODELS = (Model1, Model2, Model1Model2)

EAGER = "[model1_relation1.model1_relation3, model1_relation2]"


def insertion_literal() -> dict[str, Any]:
    """Root with a parent, a many-to-many pair sharing one child and two children."""

    return {
        "model1_prop1": "root",
        "model1_relation1": {
            "model1_prop1": "parent",
            "model1_prop2": "#ref{grandChild.id_col}",
            "model1_relation3": [
                {"#ref": "child1"},
                {"#id": "grandChild", "model2_prop1": "cibling2"},
            ],
        },
        "model1_relation2": [
            {"#id": "child1", "model2_prop1": "child1"},
            {"model2_prop1": "child2"},
        ],
    }


class HookRecorder:
    """Collects the objects passed to each lifecycle hook."""

    def __init__(self) -> None:
        self.before: list[Any] = []
        self.after: list[Any] = []
        self.keys_before: list[Any] = []

    def before_insert(self, obj: Any) -> None:
        self.before.append(obj)
        self.keys_before.append(_pk(obj))

    def after_insert(self, obj: Any) -> None:
        self.after.append(obj)

    def calls(self, obj: Any) -> tuple[int, int]:
        return (
            sum(1 for item in self.before if item is obj),
            sum(1 for item in self.after if item is obj),
        )


class AsyncHookRecorder(HookRecorder):
    async def before_insert(self, obj: Any) -> None:  # type: ignore[override]
        super().before_insert(obj)

    async def after_insert(self, obj: Any) -> None:  # type: ignore[override]
        super().after_insert(obj)


def unwrap(value: Any) -> Any:
    return value.obj if isinstance(value, RelatedResult) else value


def check_tree(
    case: unittest.TestCase,
    result: Any,
    hooks: Optional[HookRecorder] = None,
) -> None:
    """Assert `result` holds the tree built from `insertion_literal()`."""

    root = unwrap(result)
    parent = result.relations["model1_relation1"]
    relation3 = sorted(
        (unwrap(item) for item in parent.relations["model1_relation3"]),
        key=lambda item: item.model2_prop1,
    )
    relation2 = sorted(
        (unwrap(item) for item in result.relations["model1_relation2"]),
        key=lambda item: item.model2_prop1,
    )

    case.assertEqual(root.model1_prop1, "root")
    case.assertEqual(unwrap(parent).model1_prop1, "parent")
    case.assertEqual([item.model2_prop1 for item in relation3], ["child1", "cibling2"])
    case.assertEqual([item.model2_prop1 for item in relation2], ["child1", "child2"])

    case.assertEqual(root.model1_id, unwrap(parent).id)
    case.assertEqual(unwrap(parent).model1_prop2, relation3[1].id_col)
    case.assertEqual(relation3[0].id_col, relation2[0].id_col)
    case.assertTrue(all(item.model_1_id == root.id for item in relation2))

    if hooks is None:
        return
    for obj in (root, unwrap(parent), *relation3, *relation2):
        case.assertEqual(hooks.calls(obj), (1, 1))


def _pk(obj: Any) -> Any:
    return obj.id_col if isinstance(obj, Model2) else obj.id
