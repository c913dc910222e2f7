"""
Shared pytest fixtures for corpusview tests.
"""
import asyncio
import os
import sys
import uuid

# Ensure project root is on path for all tests
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest

import corpusview.core.file_database as _fdb_module
from corpusview.core.event_system import EventSystem
from corpusview.core.file_database import FileDatabase
from corpusview.core.record_source import InMemoryRecordSource, RecordSource, RecordSourceError
from corpusview.core.records import FileRecord


def make_records(n: int, prefix: str = "f") -> list[FileRecord]:
    """n records with predictable ids, sizes and a two-valued 'split' annotation."""
    return [
        FileRecord(
            file_id=f"{prefix}{i:04d}",
            file_name=f"{prefix}{i:04d}.wav",
            file_path=f"/corpus/{prefix}{i:04d}.wav",
            file_size=(i + 1) * 10,
            uploaded=f"2024-01-{(i % 28) + 1:02d}",
            annotations={"split": ["train" if i % 2 == 0 else "test"]},
        )
        for i in range(n)
    ]


class CountingSource(RecordSource):
    """In-memory source that records every call and can hold fetches at a gate.

    While ``gate`` is cleared, count() and fetch() block until it is set, so
    tests can observe PENDING state and concurrent request sharing.
    """

    def __init__(self, records, fail_fetches: int = 0, fail_counts: int = 0):
        self._inner = InMemoryRecordSource(records)
        self.count_calls = 0
        self.fetch_calls: list[tuple[int, int]] = []
        self.fail_fetches = fail_fetches
        self.fail_counts = fail_counts
        self.gate = asyncio.Event()
        self.gate.set()

    async def count(self, identity):
        self.count_calls += 1
        await self.gate.wait()
        if self.fail_counts:
            self.fail_counts -= 1
            raise RecordSourceError("count failed")
        return await self._inner.count(identity)

    async def fetch(self, identity, offset, limit):
        self.fetch_calls.append((offset, limit))
        await self.gate.wait()
        if self.fail_fetches:
            self.fail_fetches -= 1
            raise RecordSourceError("fetch failed")
        return await self._inner.fetch(identity, offset, limit)


@pytest.fixture(autouse=True)
def fresh_event_system(monkeypatch):
    """Replace the module-level singleton so tests never leak subscribers."""
    fresh = EventSystem()
    monkeypatch.setattr("corpusview.core.event_system.event_system", fresh)
    monkeypatch.setattr("corpusview.core.view.event_system", fresh)
    monkeypatch.setattr("corpusview.core.selection_controller.event_system", fresh)
    monkeypatch.setattr("corpusview.core.browsing_context.event_system", fresh)
    return fresh


@pytest.fixture()
def records():
    return make_records(250)


@pytest.fixture()
def source(records):
    return InMemoryRecordSource(records)


@pytest.fixture()
def file_db(tmp_path):
    """Fresh FileDatabase in a temp dir; the module singleton is reset around each test."""
    _fdb_module._file_database = None
    db = FileDatabase(str(tmp_path / "files.db"))
    yield db
    db.close()
    _fdb_module._file_database = None


@pytest.fixture()
def sock_path():
    """Short /tmp path for AF_UNIX (macOS 104-byte limit)."""
    path = f"/tmp/cv_test_{uuid.uuid4().hex[:8]}.sock"
    yield path
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
