"""Exception hierarchy for the record layer."""

from __future__ import annotations

from collections.abc import Sequence


class RecordError(RuntimeError):
    """Base class for record layer errors."""


class ConfigurationError(RecordError):
    """Raised when a key mapping or association declaration is malformed."""


class NotFoundError(RecordError):
    """Raised when an update targets a row that does not exist."""


class ConstraintViolationError(RecordError):
    """Raised when storage rejects a write on a unique or foreign-key constraint."""


class DecodingError(RecordError):
    """Raised when a stored row does not match the shape of its record type."""


class DependencyCycleError(RecordError):
    """Raised when declared foreign keys between batched types form a cycle."""

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__("Dependency cycle between record types: " + " -> ".join(self.cycle))


__all__ = [
    "ConfigurationError",
    "ConstraintViolationError",
    "DecodingError",
    "DependencyCycleError",
    "NotFoundError",
    "RecordError",
]
