"""Schema helpers for deriving and applying `CREATE TABLE` SQL from models."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import MISSING, Field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Type, get_args, get_origin

from .contracts import AsyncDatabasePort, DatabasePort, DialectPort
from .models import DataclassModel, column_fields, require_dataclass_model, table_name


def create_table_sql(
    cls: Type[DataclassModel],
    dialect: DialectPort,
    *,
    if_not_exists: bool = False,
) -> str:
    """Build `CREATE TABLE` statement for a dataclass model.

    Transient fields are not columns and are skipped.
    """

    require_dataclass_model(cls)

    table_sql = dialect.q(table_name(cls))
    column_definitions = [column_sql(field, dialect) for field in column_fields(cls)]
    prefix = "CREATE TABLE IF NOT EXISTS" if if_not_exists else "CREATE TABLE"
    return f"{prefix} {table_sql} (\n  " + ",\n  ".join(column_definitions) + "\n);"


def apply_schema(
    db: DatabasePort,
    *models: Type[DataclassModel],
    if_not_exists: bool = False,
) -> list[str]:
    """Create tables for one or more models inside one transaction."""

    statements = [create_table_sql(cls, db.dialect, if_not_exists=if_not_exists) for cls in models]
    with db.transaction():
        for sql in statements:
            db.execute(sql)
    return statements


async def apply_schema_async(
    db: AsyncDatabasePort,
    *models: Type[DataclassModel],
    if_not_exists: bool = False,
) -> list[str]:
    """Async variant of `apply_schema` with identical SQL generation."""

    statements = [create_table_sql(cls, db.dialect, if_not_exists=if_not_exists) for cls in models]
    async with db.transaction():
        for sql in statements:
            await db.execute(sql)
    return statements


def column_sql(field: Field[Any], dialect: DialectPort) -> str:
    """Build one column definition SQL fragment."""

    if field.metadata.get("pk") and field.metadata.get("auto"):
        return dialect.auto_pk_sql(field.name)

    sql_parts = [dialect.q(field.name), resolve_sql_type(field.type)]
    sql_parts.append("NULL" if is_nullable(field) else "NOT NULL")

    if field.metadata.get("pk"):
        sql_parts.append("PRIMARY KEY")
    if field.metadata.get("unique"):
        sql_parts.append("UNIQUE")
    if "fk" in field.metadata:
        ref_table, ref_column = parse_fk_reference(field.metadata["fk"])
        sql_parts.append(f"REFERENCES {dialect.q(ref_table)} ({dialect.q(ref_column)})")

    return " ".join(sql_parts)


def resolve_sql_type(annotation: Any) -> str:
    """Map Python annotation to SQL scalar type."""

    if isinstance(annotation, str):
        lowered = annotation.lower()
        for needle, sql_type in (
            ("bool", "BOOLEAN"),
            ("datetime", "TIMESTAMP"),
            ("date", "DATE"),
            ("time", "TIME"),
            ("decimal", "NUMERIC"),
            ("bytes", "BLOB"),
            ("int", "INTEGER"),
            ("float", "REAL"),
        ):
            if needle in lowered:
                return sql_type
        return "TEXT"

    base_type = _unwrap_optional(annotation)

    if base_type is bool:
        return "BOOLEAN"
    if base_type is datetime:
        return "TIMESTAMP"
    if base_type is date:
        return "DATE"
    if base_type is time:
        return "TIME"
    if base_type is Decimal:
        return "NUMERIC"
    if base_type in {bytes, bytearray, memoryview}:
        return "BLOB"
    if base_type is int:
        return "INTEGER"
    if base_type is float:
        return "REAL"
    return "TEXT"


def is_nullable(field: Field[Any]) -> bool:
    """Infer whether SQL column should allow NULL values."""

    if field.default is None:
        return True

    if field.default is not MISSING:
        return False

    if isinstance(field.type, str):
        lowered = field.type.lower()
        return (
            lowered.startswith("optional[")
            or "| none" in lowered
            or "none |" in lowered
            or "typing.optional[" in lowered
        )

    origin = get_origin(field.type)
    if origin is None:
        return False

    return any(arg is type(None) for arg in get_args(field.type))


def parse_fk_reference(raw: Any) -> tuple[str, str]:
    """Parse `field.metadata['fk']` into `(table, column)`."""

    if isinstance(raw, str):
        parts = raw.split(".", maxsplit=1)
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise ValueError(
                "fk string must have format 'table.column', e.g. 'user.id'."
            )
        return parts[0], parts[1]

    if isinstance(raw, Mapping):
        table = _resolve_fk_table(raw.get("model"), raw.get("table"))
        column = raw.get("column", "id")
        if not isinstance(column, str) or not column:
            raise TypeError("fk mapping 'column' must be a non-empty string.")
        return table, column

    if isinstance(raw, Sequence):
        values = tuple(raw)
        if len(values) != 2:
            raise ValueError("fk sequence must have exactly 2 items: (table/model, column).")
        table = _resolve_fk_table(values[0], None)
        column = values[1]
        if not isinstance(column, str) or not column:
            raise TypeError("fk sequence column must be a non-empty string.")
        return table, column

    raise TypeError(
        "Unsupported fk format. Use 'table.column', (ModelOrTable, 'column') "
        "or {'model': Model, 'column': 'id'}."
    )


def _resolve_fk_table(model_or_table: Any, table_fallback: Any) -> str:
    if isinstance(model_or_table, str) and model_or_table:
        return model_or_table

    if isinstance(model_or_table, type):
        require_dataclass_model(model_or_table)
        return table_name(model_or_table)

    if isinstance(table_fallback, str) and table_fallback:
        return table_fallback

    raise TypeError("fk reference requires a table name string or dataclass model.")


def _unwrap_optional(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation

    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if len(args) == 1:
        return args[0]
    return annotation
