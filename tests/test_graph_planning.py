from __future__ import annotations

import unittest

from relgraph import GraphContext, ResolutionError, ValidationError, prepare_insert
from relgraph.core.graph import (
    NodeStatus,
    normalize,
    parse_graph,
    plan_batches,
    relation_paths,
    resolve,
)
from relgraph.core.graph.literal import NestedCollection, Reference, Scalar, Template

from tests.graph_models import Model1, Model1Model2, Model2, insertion_literal


class ParseGraphTests(unittest.TestCase):
    def test_markers_are_extracted_once(self) -> None:
        parsed = parse_graph(Model1, insertion_literal())
        root = parsed.roots[0]
        parent = root.relations["model1_relation1"]

        self.assertEqual(root.properties, {"model1_prop1": Scalar("root")})
        self.assertIsInstance(parent.properties["model1_prop2"], Template)
        self.assertEqual(parent.properties["model1_prop2"].refs, (("grandChild", "id_col"),))

        relation3 = parent.relations["model1_relation3"]
        self.assertIsInstance(relation3, NestedCollection)
        self.assertEqual(relation3.items[0], Reference(symbol="child1", model=Model2))
        self.assertEqual(relation3.items[1].symbol, "grandChild")

    def test_entity_positions_follow_literal_order(self) -> None:
        parsed = parse_graph(Model1, insertion_literal())
        labels = [
            entity.properties.get("model1_prop1", entity.properties.get("model2_prop1"))
            for entity in parsed.entities()
        ]
        self.assertEqual(
            labels,
            [Scalar("root"), Scalar("parent"), Scalar("cibling2"), Scalar("child1"), Scalar("child2")],
        )
        self.assertEqual([entity.position for entity in parsed.entities()], [0, 1, 2, 3, 4])

    def test_relation_paths_lists_populated_paths(self) -> None:
        parsed = parse_graph(Model1, insertion_literal())
        self.assertEqual(
            relation_paths(parsed),
            [
                ("model1_relation1",),
                ("model1_relation1", "model1_relation3"),
                ("model1_relation2",),
            ],
        )

    def test_empty_and_null_relations_are_not_paths(self) -> None:
        parsed = parse_graph(Model1, {"model1_relation1": None, "model1_relation2": []})
        self.assertEqual(relation_paths(parsed), [])

    def test_malformed_literals(self) -> None:
        cases = [
            (TypeError, "not a mapping"),
            (TypeError, {"model1_relation2": {"model2_prop1": "x"}}),
            (TypeError, {"model1_relation1": Model2()}),
            (ResolutionError, {"#id": ""}),
            (ResolutionError, {"#unknown": "x"}),
            (ResolutionError, {"model1_relation2": [{"#ref": "a", "model2_prop1": "x"}]}),
        ]
        for error, literal in cases:
            with self.subTest(literal=literal):
                with self.assertRaises(error):
                    parse_graph(Model1, literal)

    def test_instance_root_skips_unset_auto_key(self) -> None:
        parsed = parse_graph(Model1, Model1(model1_prop1="x"))
        self.assertNotIn("id", parsed.roots[0].properties)
        self.assertEqual(parsed.roots[0].properties["model1_prop1"], Scalar("x"))

    def test_relations_only_for_single_instance_root(self) -> None:
        with self.assertRaises(TypeError):
            parse_graph(Model1, [Model1()], relations={"model1_relation2": []})
        with self.assertRaises(ValueError):
            parse_graph(Model1, Model1(), relations={"missing": []})


class NormalizeAndPlanTests(unittest.TestCase):
    def _graph(self, literal: object, **kwargs: object):  # noqa: ANN202
        graph = normalize(parse_graph(Model1, literal), **kwargs)  # type: ignore[arg-type]
        resolve(graph)
        return graph

    def test_nodes_edges_and_batches_for_reference_literal(self) -> None:
        graph = self._graph(insertion_literal())

        self.assertEqual(
            [(node.model, node.join) for node in graph.nodes],
            [
                (Model1, False),
                (Model1, False),
                (Model1Model2, True),
                (Model2, False),
                (Model1Model2, True),
                (Model2, False),
                (Model2, False),
            ],
        )
        self.assertEqual(plan_batches(graph), [[3], [1], [0, 4], [5, 6], [2]])

    def test_edges_follow_relation_direction(self) -> None:
        graph = self._graph(insertion_literal())
        edges = {(edge.dependent, edge.dependency, edge.column, edge.prop) for edge in graph.edges}

        self.assertIn((0, 1, "id", "model1_id"), edges)
        self.assertIn((5, 0, "id", "model_1_id"), edges)
        self.assertIn((2, 1, "id", "model1_id"), edges)
        self.assertIn((2, 5, "id_col", "model2_id"), edges)
        self.assertIn((1, 3, "id_col", None), edges)

    def test_reference_and_declaration_share_a_node(self) -> None:
        graph = self._graph(insertion_literal())
        self.assertEqual(graph.symbols.index("child1"), 5)
        self.assertEqual(len([node for node in graph.nodes if node.model is Model2]), 3)

    def test_pending_properties_cover_relation_keys_and_templates(self) -> None:
        graph = self._graph(insertion_literal())
        self.assertEqual(graph.pending_properties(0), frozenset({"model1_id"}))
        self.assertEqual(graph.pending_properties(1), frozenset({"model1_prop2"}))
        self.assertEqual(graph.pending_properties(2), frozenset({"model1_id", "model2_id"}))

    def test_repeated_instance_is_one_node(self) -> None:
        shared = Model2(model2_prop1="shared")
        graph = normalize(
            parse_graph(
                Model1,
                Model1(),
                relations={"model1_relation2": [shared], "model1_relation3": [shared]},
            )
        )
        self.assertEqual(len([node for node in graph.nodes if node.instance is shared]), 1)

    def test_identical_repeated_declaration_is_accepted(self) -> None:
        graph = self._graph(
            {
                "model1_relation2": [{"#id": "a", "model2_prop1": "x"}],
                "model1_relation3": [{"#id": "a", "model2_prop1": "x"}],
            }
        )
        self.assertEqual(len([node for node in graph.nodes if node.model is Model2]), 1)

    def test_bare_declaration_takes_content_of_a_later_one(self) -> None:
        graph = self._graph(
            {
                "model1_relation3": [{"#id": "a"}],
                "model1_relation2": [{"#id": "a", "model2_prop1": "x"}],
            }
        )
        nodes = [node for node in graph.nodes if node.model is Model2]
        self.assertEqual(len(nodes), 1)
        self.assertEqual(nodes[0].properties, {"model2_prop1": "x"})
        self.assertEqual(graph.pending_properties(nodes[0].index), frozenset({"model_1_id"}))

    def test_resolution_errors(self) -> None:
        cases = {
            "dangling": {"model1_relation1": {"#ref": "missing"}},
            "duplicate": {
                "model1_relation2": [
                    {"#id": "a", "model2_prop1": "x"},
                    {"#id": "a", "model2_prop1": "y"},
                ]
            },
            "bare then two contents": {
                "model1_relation2": [
                    {"#id": "a"},
                    {"#id": "a", "model2_prop1": "x"},
                    {"#id": "a", "model2_prop1": "y"},
                ]
            },
            "wrong model": {"#id": "a", "model1_relation2": [{"#ref": "a"}]},
            "same id two models": {
                "#id": "a",
                "model1_relation2": [{"#id": "a"}],
            },
            "unknown column": {"#id": "a", "model1_relation2": [{"model2_prop1": "#ref{a.nope}"}]},
            "template to unknown id": {"model1_prop1": "#ref{nobody.id}"},
            "two sources": {
                "#id": "a",
                "model1_relation2": [{"#id": "c", "model2_prop1": "c"}],
                "model1_relation3": [{"#ref": "c"}],
                "model1_relation1": {"model1_relation2": [{"#ref": "c"}]},
            },
        }
        for name, literal in cases.items():
            with self.subTest(name):
                with self.assertRaises(ResolutionError):
                    self._graph(literal)

    def test_cycle_is_rejected(self) -> None:
        graph = self._graph(
            {
                "#id": "a",
                "model1_prop1": "#ref{b.model1_prop1}",
                "model1_relation1": {"#id": "b", "model1_prop1": "#ref{a.model1_prop1}"},
            }
        )
        with self.assertRaises(ResolutionError) as ctx:
            plan_batches(graph)
        self.assertIn(ctx.exception.symbol, {"a", "b"})

    def test_context_parent_joins_as_existing_node(self) -> None:
        parent = Model1(id=7, model1_prop1="persisted")
        graph = normalize(
            parse_graph(Model2, {"model2_prop1": "child"}),
            context=GraphContext(parent=parent, relation="model1_relation2"),
        )
        resolve(graph)

        self.assertTrue(graph.nodes[0].existing)
        self.assertEqual(graph.nodes[0].status, NodeStatus.INSERTED)
        self.assertEqual(plan_batches(graph), [[1]])

    def test_context_belongs_to_schedules_parent_update(self) -> None:
        parent = Model1(id=7)
        graph = normalize(
            parse_graph(Model1, {"model1_prop1": "new"}),
            context=GraphContext(parent=parent, relation="model1_relation1"),
        )
        resolve(graph)
        self.assertEqual(plan_batches(graph), [[1], [0]])

    def test_context_checks_relation_and_model(self) -> None:
        with self.assertRaises(ValueError):
            GraphContext(parent=Model1(id=1), relation="missing").spec()
        with self.assertRaises(TypeError):
            normalize(
                parse_graph(Model1, {}),
                context=GraphContext(parent=Model1(id=1), relation="model1_relation2"),
            )
        with self.assertRaises(ValueError):
            normalize(
                parse_graph(Model2, {}),
                context=GraphContext(parent=Model1(), relation="model1_relation2"),
            )


class PrepareInsertTests(unittest.TestCase):
    def test_plan_orders_and_validates(self) -> None:
        plan = prepare_insert(Model1, insertion_literal())

        self.assertEqual(plan.order, [3, 1, 0, 4, 5, 6, 2])
        statuses = {node.status for node in plan.graph.nodes}
        self.assertEqual(statuses, {NodeStatus.VALIDATED})

    def test_allow_list_runs_before_resolution(self) -> None:
        literal = {"model1_relation1": {"#ref": "missing"}}
        with self.assertRaises(ValidationError):
            prepare_insert(Model1, literal, allowed="model1_relation2")
        with self.assertRaises(ResolutionError):
            prepare_insert(Model1, literal, allowed="model1_relation1")

    def test_resolution_runs_before_validation(self) -> None:
        literal = {"model1_prop1": 1, "model1_relation1": {"#ref": "missing"}}
        with self.assertRaises(ResolutionError):
            prepare_insert(Model1, literal)

    def test_first_invalid_node_is_reported(self) -> None:
        literal = insertion_literal()
        literal["model1_relation2"][1]["model2_prop2"] = "x"

        with self.assertRaises(ValidationError) as ctx:
            prepare_insert(Model1, literal)

        self.assertIs(ctx.exception.model, Model2)
        self.assertEqual(list(ctx.exception.data), ["model2_prop2"])

    def test_custom_schema_factory(self) -> None:
        class Strict:
            def validate(self, properties, *, pending=frozenset()):  # noqa: ANN001,ANN201
                return {} if "model2_prop2" in properties else {"model2_prop2": "required"}

        with self.assertRaises(ValidationError):
            prepare_insert(
                Model1,
                insertion_literal(),
                schema_for=lambda model: Strict() if model is Model2 else None,
            )


if __name__ == "__main__":
    unittest.main()
