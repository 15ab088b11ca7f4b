"""Low-level CRUD/query implementations used by `Repository` and the graph inserter."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from .conditions import C, OrderBy
from .contracts import DatabasePort
from .metadata import ModelMetadata
from .models import row_to_model, to_dict
from .query_builder import (
    WhereInput,
    compile_count,
    compile_delete,
    compile_insert,
    compile_select,
    compile_update,
)


def insert_row(db: DatabasePort, meta: ModelMetadata, obj: Any) -> Any:
    """Insert an object and populate auto primary key when available."""

    compiled = compile_insert(meta, to_dict(obj), db.dialect)
    if compiled.returning:
        row = db.fetchone(compiled.sql, compiled.params)
        if row and meta.auto_pk in row:
            setattr(obj, meta.auto_pk, row[meta.auto_pk])
        return obj

    cursor = db.execute(compiled.sql, compiled.params)
    if meta.auto_pk and getattr(obj, meta.auto_pk) is None:
        new_id = db.dialect.get_lastrowid(cursor)
        if new_id is not None:
            setattr(obj, meta.auto_pk, new_id)
    return obj


def update_row(db: DatabasePort, meta: ModelMetadata, obj: Any) -> int:
    """Update one row identified by model primary key."""

    data = to_dict(obj)
    pk_value = data.get(meta.pk)
    if pk_value is None:
        raise ValueError("Cannot UPDATE without PK set on object.")
    if not meta.writable_columns:
        raise ValueError("Cannot UPDATE model with no writable columns besides primary key.")

    values = {name: data[name] for name in meta.writable_columns}
    return update_columns(db, meta, pk_value, values)


def update_columns(
    db: DatabasePort,
    meta: ModelMetadata,
    pk_value: Any,
    values: Mapping[str, Any],
) -> int:
    """Update selected columns of the row with primary key `pk_value`."""

    compiled = compile_update(meta, values, pk_value, db.dialect)
    cursor = db.execute(compiled.sql, compiled.params)
    return cursor.rowcount


def delete_row(db: DatabasePort, meta: ModelMetadata, obj: Any) -> int:
    """Delete one row identified by model primary key."""

    pk_value = getattr(obj, meta.pk)
    if pk_value is None:
        raise ValueError("Cannot DELETE without PK set on object.")

    compiled = compile_delete(meta, pk_value, db.dialect)
    cursor = db.execute(compiled.sql, compiled.params)
    return cursor.rowcount


def get_row(db: DatabasePort, meta: ModelMetadata, pk_value: Any) -> Any:
    """Fetch one row by primary key and map it to the model type."""

    compiled = compile_select(meta, db.dialect, where=C.eq(meta.pk, pk_value), limit=1)
    row = db.fetchone(compiled.sql, compiled.params)
    return row_to_model(meta.model, row) if row else None


def list_rows(
    db: DatabasePort,
    meta: ModelMetadata,
    *,
    where: WhereInput = None,
    order_by: Optional[Sequence[OrderBy]] = None,
    limit: Optional[int] = None,
) -> list[Any]:
    """List rows with optional filtering, sorting and limit."""

    compiled = compile_select(meta, db.dialect, where=where, order_by=order_by, limit=limit)
    rows = db.fetchall(compiled.sql, compiled.params)
    return [row_to_model(meta.model, row) for row in rows]


def count_rows(db: DatabasePort, meta: ModelMetadata, *, where: WhereInput = None) -> int:
    """Count rows matching optional conditions."""

    compiled = compile_count(meta, db.dialect, where)
    row = db.fetchone(compiled.sql, compiled.params)
    if not row:
        return 0
    return int(row["__count"])
