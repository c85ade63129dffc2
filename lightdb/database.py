from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Any, Mapping

from .collection import Collection
from .crypto import CryptoBox
from .errors import (
    CollectionAlreadyExistsError,
    CollectionNotFoundError,
    StorageAccessDeniedError,
    StorageError,
    StorageInvalidPathError,
)
from .file_store import AtomicFileStore
from .paths import PathStatus, check_data_file, check_folder, ensure_dir, split_key, validate_key
from .settings import DatabaseConfig
from .tree import DocumentTree

logger = logging.getLogger(__name__)


class Database:
    """
    A JSON document on disk plus any number of record collections.

    Construction only raises for invalid configuration. If the data file
    cannot be read, the problem is logged and every later call raises it.
    """

    def __init__(self, config: DatabaseConfig | Mapping[str, Any] | None = None, **options: Any):
        self.config = DatabaseConfig.coerce(dict(config) if isinstance(config, Mapping) else config, **options)
        self.collections: list[Collection] = []
        self._init_error: StorageError | None = None

        data_file = self.config.data_file
        if check_data_file(data_file) is PathStatus.INVALID:
            raise StorageInvalidPathError(
                f"Invalid file path for database: {data_file}. Provided path must lead to a .json file"
            )

        self._store = AtomicFileStore(data_file)
        self._tree = DocumentTree(
            self._store,
            crypto=CryptoBox.from_optional_key(self.config.encryption_key),
            auto_save=self.config.auto_save,
            tab_size=self.config.tab_size,
        )
        try:
            self._tree.load()
        except StorageError as e:
            logger.error("DB INIT: %s is unusable: %s", data_file, e)
            self._init_error = e

    @property
    def usable(self) -> bool:
        return self._init_error is None

    def _tree_or_raise(self) -> DocumentTree:
        if self._init_error is not None:
            raise self._init_error
        return self._tree

    # ----------------------------------------------------------- lifecycle

    def load(self) -> None:
        """(Re)read the data file, replacing the in-memory document."""
        self._tree.load()
        self._init_error = None

    @property
    def pending_save(self) -> Future[None] | None:
        return self._tree.pending_save

    def save(self) -> Future[None] | None:
        return self._tree_or_raise().save()

    def flush(self, timeout: float | None = None) -> None:
        """Wait for pending writes of the document and every collection."""
        self._tree.flush(timeout)
        for collection in self.collections:
            collection.flush(timeout)

    def close(self) -> None:
        try:
            for collection in self.collections:
                collection.close()
        finally:
            self._store.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------ document

    def get(self, key: str, decrypt: bool = False, default: Any = None) -> Any:
        return self._tree_or_raise().get(key, decrypt=decrypt, default=default)

    def has(self, key: str) -> bool:
        return self._tree_or_raise().has(key)

    def set(self, key: str, value: Any, encrypt: bool = False) -> Any:
        """Store ``value`` at ``key`` and return the key's top-level value."""
        tree = self._tree_or_raise()
        tree.set(key, value, encrypt=encrypt)
        return self._top_level(key)

    def remove(self, key: str) -> bool:
        return self._tree_or_raise().remove(key)

    def add(self, key: str, value: int | float) -> Any:
        self._tree_or_raise().add_or_subtract(key, value)
        return self._top_level(key)

    def subtract(self, key: str, value: int | float) -> Any:
        self._tree_or_raise().add_or_subtract(key, value, subtract=True)
        return self._top_level(key)

    def push_into_array(self, key: str, value: Any) -> Any:
        self._tree_or_raise().push_into_array(key, value)
        return self._top_level(key)

    def remove_from_array(self, key: str, value: Any) -> Any:
        self._tree_or_raise().remove_from_array(key, value)
        return self._top_level(key)

    def clean(self) -> None:
        self._tree_or_raise().clear()

    def to_json(self) -> dict[str, Any]:
        return self._tree_or_raise().to_snapshot()

    def _top_level(self, key: str) -> Any:
        return self._tree.get(split_key(key)[0])

    # --------------------------------------------------------- collections

    def create_collection(self, name: str, default_values: Mapping[str, Any] | None = None) -> Collection:
        validate_key(name, what="collection name")
        if any(c.name == name for c in self.collections):
            raise CollectionAlreadyExistsError(f"Collection with name {name!r} already exists")

        folder = self.config.collections_folder
        status = check_folder(folder)
        if status is PathStatus.INVALID:
            raise StorageInvalidPathError(f"Invalid path for collection: {folder}. Provided path must lead to a folder")
        if status is PathStatus.ACCESS_DENIED:
            raise StorageAccessDeniedError(f"The folder {folder} could not be accessed")
        if status is PathStatus.MISSING:
            try:
                ensure_dir(folder)
            except PermissionError as e:
                raise StorageAccessDeniedError(f"The folder {folder} could not be created") from e

        collection = Collection(
            name,
            folder,
            default_values,
            tab_size=self.config.tab_size,
            auto_save=self.config.auto_save,
        )
        self.collections.append(collection)
        return collection

    def get_collection(self, name: str) -> Collection:
        for collection in self.collections:
            if collection.name == name:
                return collection
        raise CollectionNotFoundError(f"No collection named {name!r}")

    def delete_collection(self, name: str) -> bool:
        validate_key(name, what="collection name")
        try:
            collection = self.get_collection(name)
        except CollectionNotFoundError:
            return False

        self.collections.remove(collection)
        try:
            collection.close()
        except StorageError as e:
            logger.warning("COLLECTION DELETE: pending write for %s failed: %r", name, e)
        try:
            collection.path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"An error has occurred while deleting the file {collection.path}: {e}") from e
        return True
