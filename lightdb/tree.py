from __future__ import annotations

import enum
import logging
import math
from concurrent.futures import Future
from typing import Any, Mapping

from .crypto import CryptoBox, is_encrypted_token, require_box
from .errors import DecryptionError, InvalidValueError, StorageError
from .file_store import EmptyShape
from .interfaces import DocumentFileStore
from .json_store import encode_json
from .paths import split_key

logger = logging.getLogger(__name__)


class _Missing:
    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


class Shape(enum.Enum):
    MAPPING = "mapping"
    SEQUENCE = "sequence"
    SCALAR = "scalar"


def shape_of(value: Any) -> Shape:
    if isinstance(value, Mapping):
        return Shape.MAPPING
    if isinstance(value, (list, tuple)):
        return Shape.SEQUENCE
    return Shape.SCALAR


def _check_text(text: str) -> str:
    if not text.isascii():
        try:
            text.encode("utf-8")
        except UnicodeEncodeError:
            raise InvalidValueError(f"Strings must be valid UTF-8: {text!r}") from None
    return text


def _check_flag(name: str, flag: Any) -> bool:
    if not isinstance(flag, bool):
        raise InvalidValueError(f"Parameter {name} must be of type bool, got {type(flag).__name__}")
    return flag


def to_plain(value: Any, _active: set[int] | None = None) -> Any:
    """
    Return a fresh JSON-compatible copy of ``value`` built only from dict,
    list and scalars. Raises InvalidValueError for anything else.
    """
    shape = shape_of(value)
    if shape is Shape.SCALAR:
        if isinstance(value, str):
            return _check_text(value)
        if value is None or isinstance(value, (bool, int)):
            return value
        if isinstance(value, float):
            if not math.isfinite(value):
                raise InvalidValueError(f"Non-finite numbers cannot be stored: {value!r}")
            return value
        raise InvalidValueError(f"Unsupported value type: {type(value).__name__}")

    active = set() if _active is None else _active
    if id(value) in active:
        raise InvalidValueError("Cyclic structures cannot be stored")
    active.add(id(value))
    try:
        if shape is Shape.MAPPING:
            out: dict[str, Any] = {}
            for k, v in value.items():
                if not isinstance(k, str):
                    raise InvalidValueError(f"Mapping keys must be strings, got {type(k).__name__}")
                out[_check_text(k)] = to_plain(v, active)
            return out
        return [to_plain(v, active) for v in value]
    finally:
        active.discard(id(value))


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality that keeps JSON types apart (``1``, ``1.0`` and ``True`` differ)."""
    shape = shape_of(a)
    if shape is not shape_of(b):
        return False
    if shape is Shape.MAPPING:
        return a.keys() == b.keys() and all(deep_equal(a[k], b[k]) for k in a)
    if shape is Shape.SEQUENCE:
        return len(a) == len(b) and all(deep_equal(x, y) for x, y in zip(a, b))
    return type(a) is type(b) and a == b


def _child(node: Any, segment: str) -> Any:
    shape = shape_of(node)
    if shape is Shape.MAPPING:
        return node.get(segment, MISSING)
    if shape is Shape.SEQUENCE and segment.isascii() and segment.isdigit():
        index = int(segment)
        return node[index] if index < len(node) else MISSING
    return MISSING


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class DocumentTree:
    """
    In-memory JSON document addressed by dot-paths.

    ``set`` and ``remove`` never mutate a nested container in place: every
    container on the path is replaced by a shallow copy, so values handed out
    earlier by ``get`` keep showing the document as it was.
    """

    def __init__(
        self,
        store: DocumentFileStore | None = None,
        *,
        crypto: CryptoBox | None = None,
        auto_save: bool = True,
        tab_size: int = 2,
    ):
        self._store = store
        self._crypto = crypto
        self._auto_save = auto_save
        self._tab_size = tab_size
        self._root: dict[str, Any] = {}
        self._pending: Future[None] | None = None

    @property
    def auto_save(self) -> bool:
        return self._auto_save

    @property
    def pending_save(self) -> Future[None] | None:
        return self._pending

    def load(self) -> None:
        if self._store is None:
            return
        raw = self._store.load(EmptyShape.OBJECT)
        if shape_of(raw) is not Shape.MAPPING:
            raise StorageError("The database file must contain a JSON object")
        self._root = raw

    # ----------------------------------------------------------------- reads

    def lookup(self, key: str) -> Any:
        node: Any = self._root
        for segment in split_key(key):
            node = _child(node, segment)
            if node is MISSING:
                break
        return node

    def get(self, key: str, *, decrypt: bool = False, default: Any = None) -> Any:
        if _check_flag("decrypt", decrypt):
            box = require_box(self._crypto)
            value = self.lookup(key)
            if not is_encrypted_token(value):
                raise DecryptionError()
            return box.decrypt(value)
        value = self.lookup(key)
        return default if value is MISSING else value

    def has(self, key: str) -> bool:
        return self.lookup(key) is not MISSING

    def to_snapshot(self) -> dict[str, Any]:
        return to_plain(self._root)

    def dumps(self) -> bytes:
        return encode_json(self._root, indent=self._tab_size or None)

    # ------------------------------------------------------------- mutations

    def set(self, key: str, value: Any, *, encrypt: bool = False) -> bool:
        """Store ``value`` at ``key``. Returns False when nothing changed."""
        segments = split_key(key)
        if _check_flag("encrypt", encrypt):
            box = require_box(self._crypto)
            if not isinstance(value, str):
                raise InvalidValueError("The provided value must be a string to be encrypted")
        plain = to_plain(value)

        # encrypted values are always rewritten with a fresh IV
        if not encrypt and deep_equal(self.lookup(key), plain):
            return False
        stored = box.encrypt(plain) if encrypt else plain

        *parents, last = segments
        node = self._root
        for segment in parents:
            child = node.get(segment)
            child = dict(child) if shape_of(child) is Shape.MAPPING else {}
            node[segment] = child
            node = child
        node[last] = stored

        self._changed()
        return True

    def remove(self, key: str) -> bool:
        """Delete ``key``. Returns whether the path no longer resolves."""
        *parents, last = split_key(key)
        parent: Any = self._root
        for segment in parents:
            parent = _child(parent, segment)
        if shape_of(parent) is Shape.MAPPING and last in parent:
            node: Any = self._root
            for segment in parents:
                child = _child(node, segment)
                child = dict(child) if shape_of(child) is Shape.MAPPING else list(child)
                if shape_of(node) is Shape.MAPPING:
                    node[segment] = child
                else:
                    node[int(segment)] = child
                node = child
            del node[last]
            self._changed()
        return not self.has(key)

    def add_or_subtract(self, key: str, delta: Any, *, subtract: bool = False) -> int | float:
        if not _is_number(delta) or not math.isfinite(delta):
            raise InvalidValueError("The provided value must be a finite number")
        existing = self.lookup(key)
        if existing is MISSING or existing is None:
            existing = 0
        elif not _is_number(existing):
            raise InvalidValueError("The value of the provided key must be a number")

        result = existing - delta if subtract else existing + delta
        self.set(key, result)
        return result

    def push_into_array(self, key: str, value: Any) -> list[Any]:
        items = self._existing_list(key)
        items.append(to_plain(value))
        self.set(key, items)
        return items

    def remove_from_array(self, key: str, value: Any) -> list[Any]:
        target = to_plain(value)
        items = [v for v in self._existing_list(key) if not deep_equal(v, target)]
        self.set(key, items)
        return items

    def clear(self) -> None:
        self._root = {}
        self._changed()

    # ----------------------------------------------------------- persistence

    def save(self) -> Future[None] | None:
        if self._store is None:
            return None
        fut = self._store.write(self.dumps())
        if fut is not self._pending:
            # coalesced saves share one future
            fut.add_done_callback(self._log_failure)
            self._pending = fut
        return fut

    def flush(self, timeout: float | None = None) -> None:
        if self._store is not None:
            self._store.flush(timeout)

    def _changed(self) -> None:
        if self._auto_save:
            self.save()

    def _existing_list(self, key: str) -> list[Any]:
        existing = self.lookup(key)
        if existing is MISSING or existing is None:
            return []
        if shape_of(existing) is not Shape.SEQUENCE:
            raise InvalidValueError("The value of the provided key must be an array")
        return list(existing)

    @staticmethod
    def _log_failure(fut: Future[None]) -> None:
        if fut.cancelled():
            return
        e = fut.exception()
        if e is not None:
            logger.warning("DOCUMENT SAVE: failed: %r", e)
