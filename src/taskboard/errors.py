from __future__ import annotations


class TaskboardError(Exception):
    """Base class for errors raised by the task core."""


class TaskValidationError(TaskboardError):
    """A create/update/patch request broke one of the field rules."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class ConcurrencyConflictError(TaskboardError):
    """The supplied row_version no longer matches the stored task."""


class StorageError(TaskboardError):
    """The storage backend failed to complete an operation."""


class OperationCancelled(TaskboardError):
    """The caller signalled cancellation before the operation finished."""


class ImportFormatError(TaskboardError):
    """The CSV as a whole cannot be imported (empty input, bad header, missing columns)."""
