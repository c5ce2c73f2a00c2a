"""
Shared fixtures.

Real SQLite databases live in pytest's tmp_path. FakeEngine is an
in-memory engine that can be told to open slowly or to fail, for the
readiness-gate and error-path tests.
"""

import asyncio
import copy
from typing import Optional

import pytest
import pytest_asyncio

from mealplanner.storage import (
    DuplicateKeyError,
    EngineUnavailableError,
    LegacyFlatStore,
    LocalStore,
    SQLiteEngine,
    StorageEngine,
    TransactionError,
)
from mealplanner.storage.schema import table_spec


class FakeEngine(StorageEngine):
    """Dict-backed engine with switchable faults."""

    def __init__(
        self,
        open_delay: float = 0.0,
        unavailable: bool = False,
        failing: Optional[set[str]] = None,
    ):
        self.open_delay = open_delay
        self.unavailable = unavailable
        self.failing = failing or set()
        self.tables: dict[str, dict[str, dict]] = {}
        self.open_calls = 0
        self.calls: list[str] = []

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if op in self.failing:
            raise TransactionError(f"{op} failed: disk I/O error")

    async def open(self) -> None:
        self.open_calls += 1
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.unavailable:
            raise EngineUnavailableError("no persistent storage")

    async def close(self) -> None:
        pass

    async def get(self, table, key):
        self._check("get")
        record = self.tables.get(table, {}).get(key)
        return copy.deepcopy(record)

    async def get_all(self, table):
        self._check("get_all")
        return [copy.deepcopy(r) for r in self.tables.get(table, {}).values()]

    async def add(self, table, record):
        self._check("add")
        key = record[table_spec(table).key_path]
        rows = self.tables.setdefault(table, {})
        if key in rows:
            raise DuplicateKeyError(table, key)
        rows[key] = copy.deepcopy(record)
        return True

    async def put(self, table, record):
        self._check("put")
        key = record[table_spec(table).key_path]
        self.tables.setdefault(table, {})[key] = copy.deepcopy(record)
        return True

    async def delete(self, table, key):
        self._check("delete")
        self.tables.get(table, {}).pop(key, None)
        return True


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "data" / "babyFoodTracker.sqlite3")


@pytest_asyncio.fixture
async def store(db_path):
    store = LocalStore(SQLiteEngine(db_path, open_attempts=1))
    assert await store.open() is True
    yield store
    await store.close()


@pytest.fixture
def legacy(tmp_path):
    return LegacyFlatStore(tmp_path / "localStorage.json")


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def make_fake_store():
    """Factory: make_fake_store(open_delay=..., unavailable=..., failing={...})."""
    def _make(**kwargs) -> tuple[LocalStore, FakeEngine]:
        engine = FakeEngine(**kwargs)
        return LocalStore(engine), engine
    return _make
