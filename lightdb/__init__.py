from __future__ import annotations

from typing import Any, Mapping

from .aio import AsyncDatabase
from .collection import Collection
from .crypto import CryptoBox
from .database import Database
from .errors import (
    CollectionAlreadyExistsError,
    CollectionNotFoundError,
    DecryptionError,
    InvalidKeyError,
    InvalidValueError,
    LightDBError,
    MissingEncryptionKeyError,
    StorageAccessDeniedError,
    StorageError,
    StorageInvalidPathError,
)
from .file_store import AtomicFileStore, EmptyShape, WriteState
from .settings import DatabaseConfig, get_settings
from .tree import MISSING, DocumentTree


def open_database(config: DatabaseConfig | Mapping[str, Any] | None = None, **options: Any) -> Database:
    return Database(config, **options)


__all__ = [
    "open_database",
    "Database",
    "AsyncDatabase",
    "Collection",
    "DatabaseConfig",
    "get_settings",
    "DocumentTree",
    "MISSING",
    "AtomicFileStore",
    "EmptyShape",
    "WriteState",
    "CryptoBox",
    "LightDBError",
    "InvalidKeyError",
    "InvalidValueError",
    "MissingEncryptionKeyError",
    "DecryptionError",
    "StorageError",
    "StorageAccessDeniedError",
    "StorageInvalidPathError",
    "CollectionAlreadyExistsError",
    "CollectionNotFoundError",
]
