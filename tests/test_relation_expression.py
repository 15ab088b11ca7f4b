from __future__ import annotations

import unittest

from relgraph import RelationExpression, ValidationError
from relgraph.core.graph import check_allowed


class RelationExpressionTests(unittest.TestCase):
    def test_parse_single_path(self) -> None:
        tree = RelationExpression.parse("children.pets")
        self.assertEqual(tree.paths(), [("children", "pets")])

    def test_parse_list_and_branches(self) -> None:
        tree = RelationExpression.parse("[children.[pets, movies], parent]")
        self.assertEqual(
            tree.paths(),
            [("children", "pets"), ("children", "movies"), ("parent",)],
        )
        self.assertEqual(str(tree), "[children.[pets, movies], parent]")

    def test_whitespace_is_ignored(self) -> None:
        tree = RelationExpression.parse("  [ a . b ,c ]  ")
        self.assertEqual(tree.paths(), [("a", "b"), ("c",)])

    def test_sequence_inputs_are_merged(self) -> None:
        tree = RelationExpression.parse(["a.b", "a.c", "d"])
        self.assertEqual(tree.paths(), [("a", "b"), ("a", "c"), ("d",)])

    def test_repeated_names_merge(self) -> None:
        tree = RelationExpression.parse("[a.b, a.c.d]")
        self.assertEqual(list(tree.children), ["a"])
        self.assertEqual(tree.paths(), [("a", "b"), ("a", "c", "d")])

    def test_empty_expression_is_falsy(self) -> None:
        self.assertFalse(RelationExpression.parse(""))
        self.assertFalse(RelationExpression.parse([]))
        self.assertTrue(RelationExpression.parse("a"))

    def test_parse_returns_existing_expression(self) -> None:
        tree = RelationExpression.parse("a")
        self.assertIs(RelationExpression.parse(tree), tree)

    def test_invalid_expressions(self) -> None:
        for text in ["a.", "[a, b", "a b", "a..b", "[]", "a-b", "1a", "a]"]:
            with self.subTest(text=text):
                with self.assertRaises(ValueError):
                    RelationExpression.parse(text)

    def test_invalid_input_types(self) -> None:
        with self.assertRaises(TypeError):
            RelationExpression.parse(42)  # type: ignore[arg-type]
        with self.assertRaises(TypeError):
            RelationExpression.parse(["a", 1])  # type: ignore[list-item]

    def test_contains_path_requires_full_prefix(self) -> None:
        tree = RelationExpression.parse("[model1_relation1.model1_relation3, model1_relation2]")

        self.assertTrue(tree.contains_path(("model1_relation1",)))
        self.assertTrue(tree.contains_path(("model1_relation1", "model1_relation3")))
        self.assertTrue(tree.contains_path(("model1_relation2",)))
        self.assertFalse(tree.contains_path(("model1_relation2", "model2_relation1")))
        self.assertFalse(tree.contains_path(("model1_relation3",)))

    def test_wildcard_matches_any_name_at_its_level(self) -> None:
        tree = RelationExpression.parse("[*, parent.*.pets]")

        self.assertTrue(tree.contains_path(("anything",)))
        self.assertFalse(tree.contains_path(("anything", "deeper")))
        self.assertTrue(tree.contains_path(("parent", "children", "pets")))
        self.assertFalse(tree.contains_path(("parent", "children", "toys")))


class CheckAllowedTests(unittest.TestCase):
    def test_none_allows_everything(self) -> None:
        check_allowed([("a", "b", "c")], None)

    def test_subset_passes(self) -> None:
        check_allowed([("a",), ("a", "b")], "a.[b, c]")

    def test_disallowed_path_raises_validation_error(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            check_allowed([("a",), ("a", "b")], "[a, c]")

        self.assertIn("allowed_relations", ctx.exception.data)
        self.assertIn("a.b", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
