from __future__ import annotations

from pathlib import Path
import sys
import threading


import pytest


# Ensure the repository root (parent of ./tests) is importable during pytest collection.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


KEY = "0123456789abcdef0123456789abcdef"


@pytest.fixture
def db_config(tmp_path: Path) -> dict:
    """
    Point the database at a temp directory so tests never touch ./lightdb.json.
    """
    return {
        "dataFile": str(tmp_path / "db.json"),
        "collectionsFolder": str(tmp_path / "collections"),
    }


@pytest.fixture
def db(db_config):
    from lightdb import Database

    database = Database(db_config)
    yield database
    database.close()


@pytest.fixture
def encrypted_db(db_config):
    from lightdb import Database

    database = Database(db_config, encryption_key=KEY)
    yield database
    database.close()


class GatedWriter:
    """
    Replacement for ``atomic_write_bytes`` that blocks every physical write
    until ``release()`` and records what was written.
    """

    def __init__(self, real):
        self._real = real
        self._gate = threading.Event()
        self.started = threading.Event()
        self.payloads: list[bytes] = []

    def __call__(self, path, data):
        self.started.set()
        assert self._gate.wait(5), "writer was never released"
        self.payloads.append(data)
        self._real(path, data)

    def release(self) -> None:
        self._gate.set()


@pytest.fixture
def gated_writer(monkeypatch: pytest.MonkeyPatch) -> GatedWriter:
    import lightdb.file_store as file_store

    writer = GatedWriter(file_store.atomic_write_bytes)
    monkeypatch.setattr(file_store, "atomic_write_bytes", writer)
    return writer
