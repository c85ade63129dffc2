from __future__ import annotations

import logging
import random
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Mapping

from .errors import InvalidKeyError, InvalidValueError, StorageError
from .file_store import AtomicFileStore, EmptyShape
from .json_store import encode_json
from .tree import MISSING, Shape, shape_of, to_plain

logger = logging.getLogger(__name__)

Record = dict[str, Any]
Predicate = Callable[[Record], Any]

AUTO_INCREMENT_PREFIX = "$"


def _check_callable(fn: Any) -> None:
    if not callable(fn):
        raise InvalidValueError("The provided parameter must be a function")


class Collection:
    """
    An ordered list of flat records persisted to ``<folder>/<name>.json``.

    ``default_values`` fills in missing fields on insert. A key written as
    ``"$field"`` makes ``field`` auto-incrementing: it becomes the value of
    the last record carrying ``field`` plus one, or the configured seed when
    no such record holds a number.
    """

    def __init__(
        self,
        name: str,
        folder: Path,
        default_values: Mapping[str, Any] | None = None,
        *,
        tab_size: int = 2,
        auto_save: bool = True,
    ):
        if not isinstance(name, str) or not name:
            raise InvalidKeyError("The provided name for the collection is invalid")
        if default_values is None:
            default_values = {}
        if shape_of(default_values) is not Shape.MAPPING:
            raise InvalidValueError("The default_values option must be a mapping")

        self.name = name
        self._defaults: Record = to_plain(default_values)
        self._tab_size = tab_size
        self._auto_save = auto_save
        self._pending: Future[None] | None = None
        self._store = AtomicFileStore(Path(folder) / f"{name}.json")

        raw = self._store.load(EmptyShape.ARRAY)
        if shape_of(raw) is not Shape.SEQUENCE or any(shape_of(r) is not Shape.MAPPING for r in raw):
            raise StorageError(f"Collection file {self._store.path} must contain a JSON array of objects")
        self._records: list[Record] = raw

    @property
    def path(self) -> Path:
        return self._store.path

    @property
    def entries(self) -> int:
        return len(self._records)

    def to_list(self) -> list[Record]:
        return to_plain(self._records)

    def insert(self, record: Mapping[str, Any]) -> Record:
        if shape_of(record) is not Shape.MAPPING:
            raise InvalidValueError("Provided entry must be a mapping")
        entry = to_plain(record)
        self._backfill(entry)
        self._records.append(entry)
        self._changed()
        return dict(entry)

    def get(self, predicate: Predicate | None = None) -> Record | list[Record] | None:
        """
        ``None`` when nothing matches; the record itself when a predicate was
        given and exactly one record matches; a list otherwise.
        """
        if predicate is not None:
            _check_callable(predicate)
        matches = [r for r in self._records if predicate is None or predicate(r)]
        if not matches:
            return None
        if predicate is not None and len(matches) == 1:
            return matches[0]
        return matches

    def has(self, predicate: Predicate) -> bool:
        _check_callable(predicate)
        return any(predicate(r) for r in self._records)

    def get_random_document(self, amount: int = 1) -> Record | list[Record]:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidValueError("The amount of entries must be a number bigger than 0")
        if amount > len(self._records):
            raise InvalidValueError(
                "The provided amount of entries exceeds the total amount of entries from the collection"
            )
        picked = random.sample(self._records, amount)
        return picked[0] if amount == 1 else picked

    def delete(self, predicate: Predicate | None = None) -> list[Record]:
        if predicate is None:
            self._records = []
        else:
            _check_callable(predicate)
            self._records = [r for r in self._records if not predicate(r)]
        self._changed()
        return self._records

    def update(self, callback: Callable[[Record], Any], predicate: Predicate | None = None) -> list[Record]:
        _check_callable(callback)
        if predicate is not None:
            _check_callable(predicate)
        for record in self._records:
            if predicate is None or predicate(record):
                callback(record)
        self._changed()
        return self._records

    def save(self) -> Future[None]:
        return self._store.write(encode_json(self._records, indent=self._tab_size or None))

    def flush(self, timeout: float | None = None) -> None:
        self._store.flush(timeout)

    def close(self) -> None:
        self._store.close()

    def _changed(self) -> None:
        if self._auto_save:
            fut = self.save()
            if fut is not self._pending:
                fut.add_done_callback(self._log_failure)
                self._pending = fut

    def _backfill(self, entry: Record) -> None:
        for key, default in self._defaults.items():
            if key.startswith(AUTO_INCREMENT_PREFIX):
                field = key[len(AUTO_INCREMENT_PREFIX):]
                if field in entry:
                    continue
                last = next((r[field] for r in reversed(self._records) if field in r), MISSING)
                if isinstance(last, (int, float)) and not isinstance(last, bool):
                    entry[field] = last + 1
                else:
                    entry[field] = to_plain(default)
            elif key not in entry:
                entry[key] = to_plain(default)

    def _log_failure(self, fut: Future[None]) -> None:
        e = None if fut.cancelled() else fut.exception()
        if e is not None:
            logger.warning("COLLECTION SAVE: %s failed: %r", self.name, e)

    def __repr__(self) -> str:
        return f"Collection(name={self.name!r}, entries={self.entries})"
