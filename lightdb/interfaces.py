from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Protocol

from .file_store import EmptyShape


class DocumentFileStore(Protocol):
    """
    Minimal persistence interface shared by the document tree and collections:
    one JSON file, read synchronously, written atomically in the background.
    """

    def load(self, shape: EmptyShape) -> Any:
        """Load and return the parsed file, creating it as ``shape`` if absent."""
        ...

    def write(self, payload: bytes) -> Future[None]:
        """Schedule an atomic write; the future resolves once it is on disk."""
        ...

    def flush(self, timeout: float | None = None) -> None:
        ...

    def close(self) -> None:
        ...
