"""DB-API adapter and dialect exports."""

from .async_database import AsyncDatabase
from .database import Database
from .dialects import Dialect, MySQLDialect, PostgresDialect, SQLiteDialect

__all__ = [
    "AsyncDatabase",
    "Database",
    "Dialect",
    "MySQLDialect",
    "PostgresDialect",
    "SQLiteDialect",
]
