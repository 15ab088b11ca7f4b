"""Async CRUD/query implementations used by `AsyncRepository` and the async graph inserter."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from ._async_utils import _maybe_await
from .conditions import C, OrderBy
from .contracts import AsyncDatabasePort
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


async def insert_row(db: AsyncDatabasePort, meta: ModelMetadata, obj: Any) -> Any:
    """Insert an object and populate auto primary key when available."""

    compiled = compile_insert(meta, to_dict(obj), db.dialect)
    if compiled.returning:
        row = await db.fetchone(compiled.sql, compiled.params)
        if row and meta.auto_pk in row:
            setattr(obj, meta.auto_pk, row[meta.auto_pk])
        return obj

    cursor = await db.execute(compiled.sql, compiled.params)
    try:
        if meta.auto_pk and getattr(obj, meta.auto_pk) is None:
            new_id = db.dialect.get_lastrowid(cursor)
            if new_id is not None:
                setattr(obj, meta.auto_pk, new_id)
    finally:
        await _close_cursor(cursor)
    return obj


async def update_row(db: AsyncDatabasePort, meta: ModelMetadata, obj: Any) -> int:
    data = to_dict(obj)
    pk_value = data.get(meta.pk)
    if pk_value is None:
        raise ValueError("Cannot UPDATE without PK set on object.")
    if not meta.writable_columns:
        raise ValueError("Cannot UPDATE model with no writable columns besides primary key.")

    values = {name: data[name] for name in meta.writable_columns}
    return await update_columns(db, meta, pk_value, values)


async def update_columns(
    db: AsyncDatabasePort,
    meta: ModelMetadata,
    pk_value: Any,
    values: Mapping[str, Any],
) -> int:
    compiled = compile_update(meta, values, pk_value, db.dialect)
    return await _execute_rowcount(db, compiled.sql, compiled.params)


async def delete_row(db: AsyncDatabasePort, meta: ModelMetadata, obj: Any) -> int:
    pk_value = getattr(obj, meta.pk)
    if pk_value is None:
        raise ValueError("Cannot DELETE without PK set on object.")

    compiled = compile_delete(meta, pk_value, db.dialect)
    return await _execute_rowcount(db, compiled.sql, compiled.params)


async def get_row(db: AsyncDatabasePort, meta: ModelMetadata, pk_value: Any) -> Any:
    compiled = compile_select(meta, db.dialect, where=C.eq(meta.pk, pk_value), limit=1)
    row = await db.fetchone(compiled.sql, compiled.params)
    return row_to_model(meta.model, row) if row else None


async def list_rows(
    db: AsyncDatabasePort,
    meta: ModelMetadata,
    *,
    where: WhereInput = None,
    order_by: Optional[Sequence[OrderBy]] = None,
    limit: Optional[int] = None,
) -> list[Any]:
    compiled = compile_select(meta, db.dialect, where=where, order_by=order_by, limit=limit)
    rows = await db.fetchall(compiled.sql, compiled.params)
    return [row_to_model(meta.model, row) for row in rows]


async def count_rows(db: AsyncDatabasePort, meta: ModelMetadata, *, where: WhereInput = None) -> int:
    compiled = compile_count(meta, db.dialect, where)
    row = await db.fetchone(compiled.sql, compiled.params)
    if not row:
        return 0
    return int(row["__count"])


async def _execute_rowcount(db: AsyncDatabasePort, sql: str, params: Any) -> int:
    cursor = await db.execute(sql, params)
    try:
        return int(getattr(cursor, "rowcount", 0) or 0)
    finally:
        await _close_cursor(cursor)


async def _close_cursor(cursor: Any) -> None:
    close = getattr(cursor, "close", None)
    if callable(close):
        await _maybe_await(close())
