"""Error taxonomy for inventory operations."""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_ARGUMENT = "InvalidArgument"
    INVALID_ARCHIVE = "InvalidArchive"
    STORAGE_FAILURE = "StorageFailure"
    NOT_FOUND = "NotFound"


class InventoryError(Exception):
    """Base error carrying an :class:`ErrorKind`.

    Raised only when a whole operation cannot be attempted; failures of single
    records inside a batch are logged and counted instead.
    """

    kind: ErrorKind = ErrorKind.STORAGE_FAILURE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidArgumentError(InventoryError, ValueError):
    kind = ErrorKind.INVALID_ARGUMENT


class InvalidArchiveError(InventoryError):
    kind = ErrorKind.INVALID_ARCHIVE


class StorageFailureError(InventoryError):
    kind = ErrorKind.STORAGE_FAILURE


class NotFoundError(InventoryError, LookupError):
    kind = ErrorKind.NOT_FOUND


class DuplicateNameError(InventoryError, ValueError):
    """A category or location name clashes within its uniqueness scope."""

    kind = ErrorKind.INVALID_ARGUMENT


__all__ = [
    "ErrorKind",
    "InventoryError",
    "InvalidArgumentError",
    "InvalidArchiveError",
    "StorageFailureError",
    "NotFoundError",
    "DuplicateNameError",
]
