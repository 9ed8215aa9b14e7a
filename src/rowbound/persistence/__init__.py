"""Explicit record writes: single operations, batches and units of work."""

from .batch import Operation, OperationKind, dependency_order, write_batch
from .operations import delete, delete_key, exists, insert, save, update
from .unit_of_work import UnitOfWork, create_unit_of_work_factory

__all__ = [
    "Operation",
    "OperationKind",
    "UnitOfWork",
    "create_unit_of_work_factory",
    "delete",
    "delete_key",
    "dependency_order",
    "exists",
    "insert",
    "save",
    "update",
    "write_batch",
]
