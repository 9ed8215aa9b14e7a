"""Records, key mappings and association descriptors."""

from .associations import Association, AssociationKind, belongs_to, has_many, has_many_through
from .base import ForeignKey, Record
from .mapping import (
    ColumnMapping,
    ForeignKeyMapping,
    KeyMapping,
    MappingRegistry,
    key_mapping,
    registry,
)

__all__ = [
    "Association",
    "AssociationKind",
    "ColumnMapping",
    "ForeignKey",
    "ForeignKeyMapping",
    "KeyMapping",
    "MappingRegistry",
    "Record",
    "belongs_to",
    "has_many",
    "has_many_through",
    "key_mapping",
    "registry",
]
