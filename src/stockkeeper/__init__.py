"""Inventory store with a recycle bin and portable archive export/import."""
from __future__ import annotations

from .exceptions import (
    ErrorKind,
    InvalidArchiveError,
    InvalidArgumentError,
    InventoryError,
    NotFoundError,
    StorageFailureError,
)
from .service import InventoryService

__all__ = [
    "ErrorKind",
    "InvalidArchiveError",
    "InvalidArgumentError",
    "InventoryError",
    "InventoryService",
    "NotFoundError",
    "StorageFailureError",
]
