from __future__ import annotations

import asyncio
import enum
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any

from .errors import StorageAccessDeniedError, StorageError
from .json_store import atomic_write_bytes, decode_json, temp_path_for

logger = logging.getLogger(__name__)


class EmptyShape(enum.Enum):
    OBJECT = "object"
    ARRAY = "array"

    @property
    def payload(self) -> bytes:
        return b"{}" if self is EmptyShape.OBJECT else b"[]"


class WriteState(enum.Enum):
    IDLE = "idle"
    WRITING = "writing"
    WRITING_QUEUED = "writing_queued"


class AtomicFileStore:
    """
    Owns one JSON file on disk.

    Reads are synchronous. Writes are atomic (temp sibling + ``os.replace``)
    and coalesced: at most one physical write is in flight. Requests that
    arrive meanwhile overwrite a single queued payload and share one future,
    which resolves when that payload has been written. Intermediate payloads
    are never written.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._guard = threading.Lock()
        self._in_flight: Future[None] | None = None
        self._queued: Future[None] | None = None
        self._queued_payload: bytes | None = None
        self._physical_writes = 0
        self._executor: ThreadPoolExecutor | None = None
        self._closed = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def temp_path(self) -> Path:
        return temp_path_for(self._path)

    @property
    def state(self) -> WriteState:
        with self._guard:
            if self._in_flight is None:
                return WriteState.IDLE
            return WriteState.WRITING if self._queued is None else WriteState.WRITING_QUEUED

    @property
    def physical_writes(self) -> int:
        return self._physical_writes

    # ------------------------------------------------------------------ read

    def read_bytes(self, shape: EmptyShape = EmptyShape.OBJECT) -> bytes:
        try:
            return self._path.read_bytes()
        except FileNotFoundError:
            pass
        except PermissionError as e:
            raise StorageAccessDeniedError(f"The file {self._path} could not be accessed") from e
        except OSError as e:
            raise StorageError(f"Failed to read {self._path}: {e}") from e

        empty = shape.payload
        try:
            self.write(empty).result()
        except StorageError as e:
            logger.warning("STORE INIT: failed to create %s: %r", self._path, e)
        return empty

    def load(self, shape: EmptyShape = EmptyShape.OBJECT) -> Any:
        return decode_json(self.read_bytes(shape), source=self._path)

    # ----------------------------------------------------------------- write

    def write(self, payload: bytes) -> Future[None]:
        with self._guard:
            if self._closed:
                raise StorageError(f"Store for {self._path} is closed")
            if self._in_flight is None:
                fut: Future[None] = Future()
                self._in_flight = fut
                self._start(payload, fut)
                return fut

            # Busy: only the newest payload survives.
            self._queued_payload = payload
            if self._queued is None:
                self._queued = Future()
            return self._queued

    async def write_async(self, payload: bytes) -> None:
        await asyncio.wrap_future(self.write(payload))

    def flush(self, timeout: float | None = None) -> None:
        """Block until the newest scheduled write has finished."""
        with self._guard:
            fut = self._queued or self._in_flight
        if fut is not None:
            fut.result(timeout)

    def close(self) -> None:
        try:
            self.flush()
        finally:
            with self._guard:
                self._closed = True
                executor, self._executor = self._executor, None
            if executor is not None:
                executor.shutdown(wait=True)

    # -------------------------------------------------------------- internal

    def _start(self, payload: bytes, fut: Future[None]) -> None:
        # caller holds self._guard
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix=f"lightdb-{self._path.name}"
            )
        self._executor.submit(self._run, payload, fut)

    def _run(self, payload: bytes, fut: Future[None]) -> None:
        notify = fut.set_running_or_notify_cancel()
        error: StorageError | None = None
        try:
            atomic_write_bytes(self._path, payload)
            logger.debug("STORE WRITE: %s (%d bytes)", self._path, len(payload))
        except PermissionError as e:
            error = StorageAccessDeniedError(f"The file {self._path} could not be accessed")
            error.__cause__ = e
        except Exception as e:
            error = StorageError(f"Failed to write {self._path}: {e}")
            error.__cause__ = e
        self._finish(fut, notify, error)

    def _finish(self, fut: Future[None], notify: bool, error: StorageError | None) -> None:
        with self._guard:
            self._physical_writes += 1
            self._in_flight = None
            if self._queued is not None:
                next_fut, next_payload = self._queued, self._queued_payload
                self._queued, self._queued_payload = None, None
                self._in_flight = next_fut
                self._start(next_payload, next_fut)

        if not notify:
            return
        if error is None:
            fut.set_result(None)
        else:
            fut.set_exception(error)
