from __future__ import annotations

import random
import sqlite3
import unittest
from dataclasses import dataclass, field
from typing import Any, Optional

from relgraph.core.conditions import C, Condition, OrderBy
from relgraph.core.metadata import build_model_metadata
from relgraph.core.query_builder import (
    append_limit,
    compile_count,
    compile_delete,
    compile_insert,
    compile_order_by,
    compile_select,
    compile_update,
    compile_where,
)
from relgraph.ports.db_api.dialects import MySQLDialect, PostgresDialect, SQLiteDialect


@dataclass
class ItemRow:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    name: str = ""
    qty: Optional[int] = None


@dataclass
class OnlyPkRow:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})


class ConditionsTests(unittest.TestCase):
    def test_condition_factory_methods(self) -> None:
        samples = [
            ("eq", C.eq("age", 18), "="),
            ("in_", C.in_("id", (1, 2)), "IN"),
        ]

        for name, condition, op in samples:
            with self.subTest(name=name):
                self.assertIsInstance(condition, Condition)
                self.assertEqual(condition.op, op)

        self.assertEqual(C.in_("id", (1, 2)).values, [1, 2])

    def test_order_by_defaults(self) -> None:
        order = OrderBy("id")
        self.assertEqual(order.col, "id")
        self.assertFalse(order.desc)


class WhereAndLimitTests(unittest.TestCase):
    def setUp(self) -> None:
        self.named = SQLiteDialect()
        self.positional = PostgresDialect()

    def test_compile_where_with_none_and_empty_list(self) -> None:
        for where in (None, []):
            with self.subTest(where=where):
                fragment = compile_where(where, self.named)
                self.assertEqual(fragment.sql, "")
                self.assertIsNone(fragment.params)

    def test_compile_where_named(self) -> None:
        fragment = compile_where([C.eq("age", 30), C.in_("email", ["a@x.io"])], self.named)
        self.assertEqual(fragment.sql, ' WHERE "age" = :age_1 AND "email" IN (:email_2)')
        self.assertEqual(fragment.params, {"age_1": 30, "email_2": "a@x.io"})

    def test_compile_where_in_named_and_empty(self) -> None:
        filled = compile_where(C.in_("id", [1, 2]), self.named)
        empty = compile_where(C.in_("id", []), self.named)

        self.assertEqual(filled.sql, ' WHERE "id" IN (:id_1, :id_2)')
        self.assertEqual(filled.params, {"id_1": 1, "id_2": 2})
        self.assertEqual(empty.sql, " WHERE 1=0")
        self.assertEqual(empty.params, {})

    def test_compile_where_positional(self) -> None:
        binary = compile_where(C.eq("age", 30), self.positional)
        in_fragment = compile_where([C.eq("age", 1), C.in_("id", [1, 2])], self.positional)
        self.assertEqual(binary.sql, ' WHERE "age" = %s')
        self.assertEqual(binary.params, [30])
        self.assertEqual(in_fragment.sql, ' WHERE "age" = %s AND "id" IN (%s, %s)')
        self.assertEqual(in_fragment.params, [1, 1, 2])

    def test_parameter_names_are_sanitized(self) -> None:
        fragment = compile_where(C.eq("weird-col", 1), self.named)
        self.assertEqual(fragment.sql, ' WHERE "weird-col" = :weird_col_1')

    def test_compile_order_by(self) -> None:
        self.assertEqual(compile_order_by(None, self.named), "")
        self.assertEqual(
            compile_order_by([OrderBy("age", desc=True), OrderBy("id")], self.named),
            ' ORDER BY "age" DESC, "id" ASC',
        )

    def test_append_limit(self) -> None:
        sql, params = append_limit("SELECT 1", {"a_1": 1}, limit=5, dialect=self.named)
        self.assertEqual(sql, "SELECT 1 LIMIT :__limit")
        self.assertEqual(params, {"a_1": 1, "__limit": 5})

        sql, params = append_limit("SELECT 1", [1], limit=5, dialect=self.positional)
        self.assertEqual(sql, "SELECT 1 LIMIT %s")
        self.assertEqual(params, [1, 5])

        self.assertEqual(append_limit("SELECT 1", None, limit=None, dialect=self.named), ("SELECT 1", None))
        self.assertEqual(append_limit("SELECT 1", None, limit=None, dialect=self.positional), ("SELECT 1", None))

    def test_random_where_matches_python_filter(self) -> None:
        rng = random.Random(7)
        conn = sqlite3.connect(":memory:")
        self.addCleanup(conn.close)
        conn.execute('CREATE TABLE "t" ("id" INTEGER, "age" INTEGER)')
        rows = [(i, rng.choice([None, 18, 30, 41])) for i in range(1, 30)]
        conn.executemany('INSERT INTO "t" VALUES (?, ?)', rows)

        for _ in range(40):
            ages = rng.sample([18, 30, 41], rng.randint(0, 3))
            conditions: list[Condition] = [C.in_("age", ages)]
            if rng.random() < 0.5:
                conditions.append(C.eq("id", rng.randint(1, 29)))

            fragment = compile_where(conditions, self.named)
            found = [row[0] for row in conn.execute(f'SELECT "id" FROM "t"{fragment.sql} ORDER BY "id"', fragment.params or {})]
            expected = [row_id for row_id, age in rows if _matches((row_id, age), conditions)]
            self.assertEqual(found, expected)


def _matches(row: tuple[int, Any], conditions: list[Condition]) -> bool:
    values = {"id": row[0], "age": row[1]}
    for condition in conditions:
        value = values[condition.col]
        if condition.op == "IN" and value not in (condition.values or []):
            return False
        if condition.op == "=" and value != condition.value:
            return False
    return True


class StatementCompilationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.meta = build_model_metadata(ItemRow)

    def test_insert_omits_unset_auto_pk_and_reads_it_back(self) -> None:
        compiled = compile_insert(self.meta, {"id": None, "name": "a", "qty": 1}, SQLiteDialect())
        self.assertEqual(
            compiled.sql,
            'INSERT INTO "itemrow" ("name", "qty") VALUES (:name, :qty) RETURNING "id";',
        )
        self.assertEqual(compiled.params, {"name": "a", "qty": 1})
        self.assertTrue(compiled.returning)

    def test_insert_keeps_explicit_pk_and_positional_params(self) -> None:
        compiled = compile_insert(self.meta, {"id": 9, "name": "a", "qty": 1}, MySQLDialect())
        self.assertEqual(
            compiled.sql,
            "INSERT INTO `itemrow` (`id`, `name`, `qty`) VALUES (%s, %s, %s);",
        )
        self.assertEqual(compiled.params, [9, "a", 1])
        self.assertFalse(compiled.returning)

    def test_insert_without_columns_uses_default_values(self) -> None:
        compiled = compile_insert(build_model_metadata(OnlyPkRow), {"id": None}, PostgresDialect())
        self.assertEqual(compiled.sql, 'INSERT INTO "onlypkrow" DEFAULT VALUES RETURNING "id";')
        self.assertIsNone(compiled.params)

    def test_update(self) -> None:
        named = compile_update(self.meta, {"qty": 2}, 5, SQLiteDialect())
        positional = compile_update(self.meta, {"name": "b", "qty": 2}, 5, PostgresDialect())

        self.assertEqual(named.sql, 'UPDATE "itemrow" SET "qty" = :set_qty WHERE "id" = :pk;')
        self.assertEqual(named.params, {"set_qty": 2, "pk": 5})
        self.assertEqual(positional.sql, 'UPDATE "itemrow" SET "name" = %s, "qty" = %s WHERE "id" = %s;')
        self.assertEqual(positional.params, ["b", 2, 5])

    def test_update_rejects_empty_and_unknown_columns(self) -> None:
        with self.assertRaises(ValueError):
            compile_update(self.meta, {}, 1, SQLiteDialect())
        with self.assertRaises(ValueError):
            compile_update(self.meta, {"id": 2}, 1, SQLiteDialect())
        with self.assertRaises(ValueError):
            compile_update(self.meta, {"missing": 2}, 1, SQLiteDialect())

    def test_delete(self) -> None:
        compiled = compile_delete(self.meta, 3, PostgresDialect())
        self.assertEqual(compiled.sql, 'DELETE FROM "itemrow" WHERE "id" = %s;')
        self.assertEqual(compiled.params, [3])

    def test_select_and_count(self) -> None:
        select = compile_select(
            self.meta,
            SQLiteDialect(),
            where=C.eq("qty", 3),
            order_by=[OrderBy("id", desc=True)],
            limit=5,
        )
        count = compile_count(self.meta, PostgresDialect(), C.in_("qty", []))

        self.assertEqual(
            select.sql,
            'SELECT "id", "name", "qty" FROM "itemrow" WHERE "qty" = :qty_1 ORDER BY "id" DESC LIMIT :__limit;',
        )
        self.assertEqual(select.params, {"qty_1": 3, "__limit": 5})
        self.assertEqual(count.sql, 'SELECT COUNT(*) AS "__count" FROM "itemrow" WHERE 1=0;')
        self.assertEqual(count.params, [])


if __name__ == "__main__":
    unittest.main()
