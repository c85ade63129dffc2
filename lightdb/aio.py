from __future__ import annotations

import asyncio
from concurrent.futures import Future
from typing import Any, Mapping

from .collection import Collection
from .database import Database
from .settings import DatabaseConfig


async def _await_write(fut: Future[None] | None) -> None:
    if fut is not None:
        await asyncio.wrap_future(fut)


class AsyncDatabase:
    """
    Async wrapper around :class:`Database`.

    Mutations run in memory on the event loop thread (they never block on
    I/O); the coroutine then waits for the coalesced write covering them.
    Loading and collection creation read files, so they go through
    ``asyncio.to_thread``.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    @classmethod
    async def open(cls, config: DatabaseConfig | Mapping[str, Any] | None = None, **options: Any) -> "AsyncDatabase":
        db = await asyncio.to_thread(Database, config, **options)
        return cls(db)

    @property
    def sync(self) -> Database:
        return self._db

    async def get(self, key: str, decrypt: bool = False, default: Any = None) -> Any:
        return self._db.get(key, decrypt, default)

    async def has(self, key: str) -> bool:
        return self._db.has(key)

    async def set(self, key: str, value: Any, encrypt: bool = False) -> Any:
        before = self._db.pending_save
        result = self._db.set(key, value, encrypt)
        await self._persisted(before)
        return result

    async def remove(self, key: str) -> bool:
        before = self._db.pending_save
        result = self._db.remove(key)
        await self._persisted(before)
        return result

    async def add(self, key: str, value: int | float) -> Any:
        before = self._db.pending_save
        result = self._db.add(key, value)
        await self._persisted(before)
        return result

    async def subtract(self, key: str, value: int | float) -> Any:
        before = self._db.pending_save
        result = self._db.subtract(key, value)
        await self._persisted(before)
        return result

    async def push_into_array(self, key: str, value: Any) -> Any:
        before = self._db.pending_save
        result = self._db.push_into_array(key, value)
        await self._persisted(before)
        return result

    async def remove_from_array(self, key: str, value: Any) -> Any:
        before = self._db.pending_save
        result = self._db.remove_from_array(key, value)
        await self._persisted(before)
        return result

    async def save(self) -> None:
        await _await_write(self._db.save())

    async def load(self) -> None:
        await asyncio.to_thread(self._db.load)

    async def create_collection(self, name: str, default_values: Mapping[str, Any] | None = None) -> Collection:
        return await asyncio.to_thread(self._db.create_collection, name, default_values)

    async def delete_collection(self, name: str) -> bool:
        return await asyncio.to_thread(self._db.delete_collection, name)

    async def close(self) -> None:
        await asyncio.to_thread(self._db.close)

    async def _persisted(self, before: Future[None] | None) -> None:
        after = self._db.pending_save
        # a no-op mutation leaves an already finished future in place
        if after is not None and (after is not before or not after.done()):
            await _await_write(after)
