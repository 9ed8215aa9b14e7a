"""SQLAlchemy (SQLite-first) storage implementation."""

from .database import SQLAlchemyDatabase, SQLAlchemyExecutor, create_database
from .schema import create_schema, drop_schema

__all__ = [
    "SQLAlchemyDatabase",
    "SQLAlchemyExecutor",
    "create_database",
    "create_schema",
    "drop_schema",
]
