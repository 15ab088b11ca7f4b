"""relgraph: dataclass ORM with atomic insertion of nested object graphs."""

from .core import *  # noqa: F401,F403
from .core import __all__ as _core_all
from .ports import AsyncDatabase, Database, Dialect, MySQLDialect, PostgresDialect, SQLiteDialect

__version__ = "0.1.0"

__all__ = [
    *_core_all,
    "Database",
    "AsyncDatabase",
    "Dialect",
    "SQLiteDialect",
    "PostgresDialect",
    "MySQLDialect",
]
