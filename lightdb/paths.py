from __future__ import annotations

import enum
import re
from pathlib import Path
from typing import Any

from .errors import InvalidKeyError

_BAD_KEY = re.compile(r"(^\.)|(\.\.)|(\.$)")


class PathStatus(enum.Enum):
    INVALID = "invalid"
    MISSING = "missing"
    ACCESS_DENIED = "access_denied"
    OK = "ok"


def is_valid_key(key: Any) -> bool:
    """
    True for a usable dot-path: a non-empty string with no leading dot,
    trailing dot or empty segment ("a..b"), encodable as UTF-8.
    """
    if not isinstance(key, str) or not key:
        return False
    if not key.isascii():
        try:
            key.encode("utf-8")
        except UnicodeEncodeError:
            return False
    return _BAD_KEY.search(key) is None


def validate_key(key: Any, *, what: str = "key") -> str:
    if not is_valid_key(key):
        raise InvalidKeyError(f"The provided {what} is invalid: {key!r}")
    return key


def split_key(key: str) -> list[str]:
    return validate_key(key).split(".")


def check_data_file(path: Path) -> PathStatus:
    if path.suffix != ".json":
        return PathStatus.INVALID
    try:
        path.lstat()
    except FileNotFoundError:
        return PathStatus.MISSING
    except PermissionError:
        return PathStatus.ACCESS_DENIED
    return PathStatus.OK


def check_folder(path: Path) -> PathStatus:
    try:
        if not path.is_dir():
            # is_dir() swallows ENOENT, tell "absent" apart from "a file"
            path.stat()
            return PathStatus.INVALID
    except FileNotFoundError:
        return PathStatus.MISSING
    except PermissionError:
        return PathStatus.ACCESS_DENIED
    return PathStatus.OK


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path
