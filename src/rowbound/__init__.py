"""Explicit-loading record layer over a relational store."""

from .config import Settings
from .errors import (
    ConfigurationError,
    ConstraintViolationError,
    DecodingError,
    DependencyCycleError,
    NotFoundError,
    RecordError,
)
from .persistence import (
    Operation,
    OperationKind,
    UnitOfWork,
    create_unit_of_work_factory,
    delete,
    delete_key,
    dependency_order,
    exists,
    insert,
    save,
    update,
    write_batch,
)
from .query import Composite, FetchRequest, fetch
from .records import (
    Association,
    AssociationKind,
    ForeignKey,
    KeyMapping,
    Record,
    belongs_to,
    has_many,
    has_many_through,
    key_mapping,
)

__all__ = [
    "Association",
    "AssociationKind",
    "Composite",
    "ConfigurationError",
    "ConstraintViolationError",
    "DecodingError",
    "DependencyCycleError",
    "FetchRequest",
    "ForeignKey",
    "KeyMapping",
    "NotFoundError",
    "Operation",
    "OperationKind",
    "Record",
    "RecordError",
    "Settings",
    "UnitOfWork",
    "belongs_to",
    "create_unit_of_work_factory",
    "delete",
    "delete_key",
    "dependency_order",
    "exists",
    "fetch",
    "has_many",
    "has_many_through",
    "insert",
    "key_mapping",
    "save",
    "update",
    "write_batch",
]
