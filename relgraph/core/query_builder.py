"""SQL fragment builders for CRUD statements, filtering, sorting and limits.

Statement text is built here once and executed by both the sync and async
repositories, so the two flavours never drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from .conditions import Condition, OrderBy
from .contracts import DialectPort
from .metadata import ModelMetadata
from .types import NamedParams, PositionalParams, QueryParams


WhereInput = Optional[Sequence[Condition] | Condition]


@dataclass(frozen=True)
class CompiledFragment:
    """Represents a compiled SQL fragment with its bound parameters."""

    sql: str
    params: QueryParams


@dataclass(frozen=True)
class CompiledInsert:
    """One `INSERT` statement and how to read back the generated key."""

    sql: str
    params: QueryParams
    returning: bool


class _ParamNameGenerator:
    """Generates safe, unique parameter names for named SQL styles."""

    def __init__(self) -> None:
        self._counter = 0

    def next(self, base: str) -> str:
        self._counter += 1
        safe = "".join(ch if ch.isalnum() or ch == "_" else "_" for ch in base)
        return f"{safe}_{self._counter}"


def compile_insert(
    meta: ModelMetadata,
    data: Mapping[str, Any],
    dialect: DialectPort,
) -> CompiledInsert:
    """Compile an `INSERT` for one row of `meta.model`.

    The auto primary key column is omitted while its value is `None`; when
    the dialect supports it a `RETURNING` clause reads the generated key.
    """

    columns = list(meta.columns)
    if meta.auto_pk and data.get(meta.auto_pk) is None:
        columns = [name for name in columns if name != meta.auto_pk]

    table_sql = dialect.q(meta.table)
    returning = bool(meta.auto_pk and dialect.supports_returning)
    suffix = dialect.returning_clause(meta.auto_pk) if returning and meta.auto_pk else ""

    if not columns:
        return CompiledInsert(
            f"INSERT INTO {table_sql} DEFAULT VALUES{suffix};", None, returning
        )

    column_sql = ", ".join(dialect.q(name) for name in columns)
    placeholders = ", ".join(dialect.placeholder(name) for name in columns)
    params: QueryParams
    if dialect.paramstyle == "named":
        params = {name: data[name] for name in columns}
    else:
        params = [data[name] for name in columns]

    sql = f"INSERT INTO {table_sql} ({column_sql}) VALUES ({placeholders}){suffix};"
    return CompiledInsert(sql, params, returning)


def compile_update(
    meta: ModelMetadata,
    values: Mapping[str, Any],
    pk_value: Any,
    dialect: DialectPort,
) -> CompiledFragment:
    """Compile `UPDATE ... SET ... WHERE pk = ?` for the given column values."""

    if not values:
        raise ValueError("update values must not be empty.")

    invalid = [key for key in values if key not in meta.writable_columns]
    if invalid:
        raise ValueError(f"Only writable model columns can be updated. Invalid: {invalid}")

    table_sql = dialect.q(meta.table)
    set_clause = ", ".join(
        f"{dialect.q(name)} = {dialect.placeholder(f'set_{name}')}" for name in values
    )
    where_sql = f"{dialect.q(meta.pk)} = {dialect.placeholder('pk')}"
    sql = f"UPDATE {table_sql} SET {set_clause} WHERE {where_sql};"

    if dialect.paramstyle == "named":
        named: NamedParams = {f"set_{name}": value for name, value in values.items()}
        named["pk"] = pk_value
        return CompiledFragment(sql, named)
    return CompiledFragment(sql, [*values.values(), pk_value])


def compile_delete(meta: ModelMetadata, pk_value: Any, dialect: DialectPort) -> CompiledFragment:
    """Compile `DELETE ... WHERE pk = ?`."""

    sql = (
        f"DELETE FROM {dialect.q(meta.table)} "
        f"WHERE {dialect.q(meta.pk)} = {dialect.placeholder('pk')};"
    )
    return CompiledFragment(sql, _one_param(dialect, "pk", pk_value))


def compile_select(
    meta: ModelMetadata,
    dialect: DialectPort,
    *,
    where: WhereInput = None,
    order_by: Optional[Sequence[OrderBy]] = None,
    limit: Optional[int] = None,
) -> CompiledFragment:
    """Compile `SELECT <columns>` with optional filter, ordering and limit."""

    column_sql = ", ".join(dialect.q(name) for name in meta.columns)
    sql = f"SELECT {column_sql} FROM {dialect.q(meta.table)}"

    where_fragment = compile_where(where, dialect)
    sql += where_fragment.sql
    sql += compile_order_by(order_by, dialect)
    sql, params = append_limit(sql, where_fragment.params, limit=limit, dialect=dialect)
    return CompiledFragment(sql + ";", params)


def compile_count(meta: ModelMetadata, dialect: DialectPort, where: WhereInput = None) -> CompiledFragment:
    """Compile `SELECT COUNT(*)` with an optional filter."""

    where_fragment = compile_where(where, dialect)
    sql = f'SELECT COUNT(*) AS "__count" FROM {dialect.q(meta.table)}{where_fragment.sql};'
    return CompiledFragment(sql, where_fragment.params)


def compile_where(where: WhereInput, dialect: DialectPort) -> CompiledFragment:
    """Compile one or many conditions into a SQL `WHERE` fragment.

    Multiple conditions are combined using `AND`.
    """

    if where is None:
        return CompiledFragment("", None)

    conditions = [where] if isinstance(where, Condition) else list(where)
    if not conditions:
        return CompiledFragment("", None)

    generator = _ParamNameGenerator()
    clauses: List[str] = []
    params: QueryParams = {} if dialect.paramstyle == "named" else []

    for item in conditions:
        clause, fragment_params = _compile_condition(item, dialect, generator)
        clauses.append(clause)
        _merge_params(params, fragment_params)

    return CompiledFragment(f" WHERE {' AND '.join(clauses)}", params)


def compile_order_by(
    order_by: Optional[Sequence[OrderBy]], dialect: DialectPort
) -> str:
    """Compile `ORDER BY` clause from ordering inputs."""

    if not order_by:
        return ""

    ordered_cols = ", ".join(
        f"{dialect.q(item.col)} {'DESC' if item.desc else 'ASC'}" for item in order_by
    )
    return f" ORDER BY {ordered_cols}"


def append_limit(
    sql: str,
    params: QueryParams,
    *,
    limit: Optional[int],
    dialect: DialectPort,
) -> Tuple[str, QueryParams]:
    """Append a `LIMIT` clause and merge parameters."""

    if dialect.paramstyle == "named":
        named_params: NamedParams = {}
        if isinstance(params, dict):
            named_params.update(params)
        if limit is not None:
            named_params["__limit"] = limit
            sql += " LIMIT :__limit"
        return sql, named_params if named_params else None

    positional_params: PositionalParams = []
    if isinstance(params, list):
        positional_params.extend(params)
    if limit is not None:
        sql += f" LIMIT {dialect.placeholder('limit')}"
        positional_params.append(limit)
    return sql, positional_params if positional_params else None


def _compile_condition(
    condition: Condition,
    dialect: DialectPort,
    generator: _ParamNameGenerator,
) -> Tuple[str, QueryParams]:
    col_sql = dialect.q(condition.col)

    if condition.op == "IN":
        values = list(condition.values or [])
        if not values:
            return "1=0", _empty_params(dialect)

        keys = [generator.next(condition.col) for _ in values]
        placeholders = ", ".join(dialect.placeholder(key) for key in keys)
        if dialect.paramstyle == "named":
            return f"{col_sql} IN ({placeholders})", dict(zip(keys, values))
        return f"{col_sql} IN ({placeholders})", list(values)

    key = generator.next(condition.col)
    return (
        f"{col_sql} {condition.op} {dialect.placeholder(key)}",
        _one_param(dialect, key, condition.value),
    )


def _one_param(dialect: DialectPort, key: str, value: Any) -> QueryParams:
    if dialect.paramstyle == "named":
        return {key: value}
    return [value]


def _empty_params(dialect: DialectPort) -> QueryParams:
    return {} if dialect.paramstyle == "named" else []


def _merge_params(target: QueryParams, source: QueryParams) -> None:
    if isinstance(target, dict) and isinstance(source, dict):
        target.update(source)
    elif isinstance(target, list) and isinstance(source, list):
        target.extend(source)
