from .storage import (
    Storage,
    StorageSession,
    StorageError,
    DuplicateEntry,
    MissingField,
    TableNotFound,
)
from .sqlite import SQLite

__all__ = [
    "Storage",
    "StorageSession",
    "StorageError",
    "DuplicateEntry",
    "MissingField",
    "TableNotFound",
    "SQLite",
]
