"""Storage collaborator interfaces and adapters."""

from .interfaces import Database, Executor, Row, WriteResult

__all__ = ["Database", "Executor", "Row", "WriteResult"]
