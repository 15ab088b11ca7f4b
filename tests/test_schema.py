from __future__ import annotations

import sqlite3
import unittest
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from relgraph import Database, SQLiteDialect, apply_schema, create_table_sql
from relgraph.core.schema import parse_fk_reference, resolve_sql_type
from relgraph.ports.db_api.dialects import MySQLDialect, PostgresDialect


@dataclass
class CustomerRow:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    email: str = field(default="", metadata={"unique": True})
    balance: Optional[Decimal] = None
    draft: list[str] = field(default_factory=list, metadata={"transient": True})


@dataclass
class InvoiceRow:
    __table__ = "invoices"

    number: str = field(default="", metadata={"pk": True})
    customer_id: Optional[int] = field(default=None, metadata={"fk": (CustomerRow, "id")})
    issued_at: Optional[datetime] = None
    paid: bool = False


class CreateTableTests(unittest.TestCase):
    def test_columns_types_and_constraints(self) -> None:
        sql = create_table_sql(InvoiceRow, SQLiteDialect())
        self.assertEqual(
            sql,
            'CREATE TABLE "invoices" (\n'
            '  "number" TEXT NOT NULL PRIMARY KEY,\n'
            '  "customer_id" INTEGER NULL REFERENCES "customerrow" ("id"),\n'
            '  "issued_at" TIMESTAMP NULL,\n'
            '  "paid" BOOLEAN NOT NULL\n'
            ");",
        )

    def test_transient_fields_are_not_columns(self) -> None:
        sql = create_table_sql(CustomerRow, PostgresDialect(), if_not_exists=True)
        self.assertTrue(sql.startswith('CREATE TABLE IF NOT EXISTS "customerrow"'))
        self.assertIn('"id" SERIAL PRIMARY KEY', sql)
        self.assertIn('"email" TEXT NOT NULL UNIQUE', sql)
        self.assertIn('"balance" NUMERIC NULL', sql)
        self.assertNotIn("draft", sql)

    def test_mysql_quoting(self) -> None:
        sql = create_table_sql(CustomerRow, MySQLDialect())
        self.assertIn("`id` INT AUTO_INCREMENT PRIMARY KEY", sql)

    def test_apply_schema_creates_tables(self) -> None:
        conn = sqlite3.connect(":memory:")
        self.addCleanup(conn.close)
        db = Database(conn, SQLiteDialect())

        statements = apply_schema(db, CustomerRow, InvoiceRow)
        names = [row["name"] for row in db.fetchall("SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name;")]

        self.assertEqual(len(statements), 2)
        self.assertEqual(names, ["customerrow", "invoices"])

    def test_resolve_sql_type(self) -> None:
        self.assertEqual(resolve_sql_type(Optional[int]), "INTEGER")
        self.assertEqual(resolve_sql_type(float), "REAL")
        self.assertEqual(resolve_sql_type(bytes), "BLOB")
        self.assertEqual(resolve_sql_type("Optional[datetime]"), "TIMESTAMP")
        self.assertEqual(resolve_sql_type(dict), "TEXT")

    def test_parse_fk_reference(self) -> None:
        self.assertEqual(parse_fk_reference("users.id"), ("users", "id"))
        self.assertEqual(parse_fk_reference({"model": CustomerRow}), ("customerrow", "id"))
        self.assertEqual(parse_fk_reference(("accounts", "code")), ("accounts", "code"))
        with self.assertRaises(ValueError):
            parse_fk_reference("users")
        with self.assertRaises(ValueError):
            parse_fk_reference(("a", "b", "c"))
        with self.assertRaises(TypeError):
            parse_fk_reference(42)


if __name__ == "__main__":
    unittest.main()
