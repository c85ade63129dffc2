from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from .errors import InvalidValueError, StorageError


def encode_json(payload: Any, *, indent: int | None = 2) -> bytes:
    """
    Serialize a document for disk. ``indent=0`` keeps newlines without
    indentation, ``None`` writes a single line.
    """
    try:
        text = json.dumps(payload, indent=indent, ensure_ascii=False, allow_nan=False)
        return text.encode("utf-8")
    except (TypeError, ValueError) as e:
        raise InvalidValueError(f"Document is not JSON serializable: {e}") from e


def decode_json(raw: bytes, *, source: Path | None = None) -> Any:
    """
    Parse bytes read from disk. Invalid JSON raises StorageError, never an
    empty document.
    """
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        where = f" in {source}" if source is not None else ""
        raise StorageError(f"Invalid JSON{where}: {e}") from e


def temp_path_for(path: Path) -> Path:
    return path.with_name(f".{path.name}.tmp")


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Atomically write bytes to disk by writing to a temp sibling then replacing.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = temp_path_for(path)
    with tmp_path.open("wb") as f:
        f.write(data)
    os.replace(tmp_path, path)
