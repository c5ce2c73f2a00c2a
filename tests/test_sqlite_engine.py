"""Tests for the SQLite engine and the schema upgrade hook."""

import sqlite3

import pytest
import pytest_asyncio

from mealplanner.storage import (
    CURRENT_USER,
    SCHEMA_VERSION,
    USER_DATA,
    USERS,
    DuplicateKeyError,
    EngineUnavailableError,
    SQLiteEngine,
    TransactionError,
)
from mealplanner.storage.schema import upgrade_schema


@pytest_asyncio.fixture
async def engine(db_path):
    engine = SQLiteEngine(db_path, open_attempts=1)
    await engine.open()
    yield engine
    await engine.close()


class TestSchema:
    """Schema creation and versioning."""

    async def test_open_creates_tables_and_version(self, engine, db_path):
        """Test that opening creates the schema."""
        conn = sqlite3.connect(db_path)
        try:
            names = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
            version = conn.execute("PRAGMA user_version").fetchone()[0]
        finally:
            conn.close()
        assert {USERS, USER_DATA, CURRENT_USER} <= names
        assert version == SCHEMA_VERSION

    async def test_reopen_keeps_data(self, engine, db_path):
        """Test that data survives reopening."""
        await engine.put(USERS, {"username": "Luna", "password": "x1", "gender": "female"})
        await engine.close()

        reopened = SQLiteEngine(db_path, open_attempts=1)
        await reopened.open()
        try:
            assert (await reopened.get(USERS, "Luna"))["gender"] == "female"
        finally:
            await reopened.close()

    def test_upgrade_is_noop_when_current(self):
        """Test that the upgrade runs once."""
        conn = sqlite3.connect(":memory:")
        try:
            assert sorted(upgrade_schema(conn)) == sorted([USERS, USER_DATA, CURRENT_USER])
            assert upgrade_schema(conn) == []
        finally:
            conn.close()

    def test_upgrade_creates_only_missing_tables(self):
        """Test that existing tables are left alone."""
        conn = sqlite3.connect(":memory:")
        try:
            conn.execute('CREATE TABLE "users" (username TEXT PRIMARY KEY, json_text TEXT NOT NULL)')
            assert sorted(upgrade_schema(conn)) == sorted([USER_DATA, CURRENT_USER])
        finally:
            conn.close()


class TestOpen:
    """Engine availability."""

    async def test_no_path_is_unavailable(self):
        """Test opening without a database path."""
        with pytest.raises(EngineUnavailableError):
            await SQLiteEngine(None).open()

    async def test_unopenable_path_is_unavailable(self, tmp_path):
        """Test opening a path that is not a database."""
        # A directory cannot be opened as a database file
        directory = tmp_path / "not-a-file"
        directory.mkdir()
        with pytest.raises(EngineUnavailableError):
            await SQLiteEngine(str(directory), open_attempts=1).open()

    async def test_memory_database(self):
        """Test an in-memory database."""
        engine = SQLiteEngine(":memory:")
        await engine.open()
        try:
            assert await engine.get_all(USERS) == []
        finally:
            await engine.close()

    async def test_operations_after_close_fail(self, engine):
        """Test that operations fail once closed."""
        await engine.close()
        with pytest.raises(TransactionError, match="not open"):
            await engine.get(USERS, "Luna")


class TestOperations:
    """Point get, get-all, insert, upsert and delete."""

    async def test_get_missing_returns_none(self, engine):
        """Test reading a missing key."""
        assert await engine.get(USERS, "nobody") is None

    async def test_add_then_get(self, engine):
        """Test inserting and reading a record."""
        record = {"username": "Luna", "password": "pass123", "gender": "female"}
        assert await engine.add(USERS, record) is True
        assert await engine.get(USERS, "Luna") == record

    async def test_add_duplicate_raises(self, engine):
        """Test that insert never overwrites."""
        await engine.add(USERS, {"username": "Luna", "password": "a1", "gender": "female"})
        with pytest.raises(DuplicateKeyError) as exc_info:
            await engine.add(USERS, {"username": "Luna", "password": "b2", "gender": "male"})
        assert exc_info.value.key == "Luna"
        assert (await engine.get(USERS, "Luna"))["password"] == "a1"

    async def test_keys_are_case_sensitive(self, engine):
        """Test that keys differing in case are distinct."""
        await engine.add(USERS, {"username": "Luna", "password": "a1", "gender": "female"})
        await engine.add(USERS, {"username": "luna", "password": "a1", "gender": "female"})
        assert len(await engine.get_all(USERS)) == 2

    async def test_put_overwrites(self, engine):
        """Test that put replaces the whole record."""
        await engine.put(USER_DATA, {"username": "Luna", "weekPlan": {}})
        await engine.put(USER_DATA, {"username": "Luna", "groceryList": []})
        assert await engine.get(USER_DATA, "Luna") == {"username": "Luna", "groceryList": []}

    async def test_get_all_returns_every_record(self, engine):
        """Test reading every record of a table."""
        for name in ("b", "a", "c"):
            await engine.add(USERS, {"username": name, "password": "x1", "gender": "male"})
        names = sorted(r["username"] for r in await engine.get_all(USERS))
        assert names == ["a", "b", "c"]

    async def test_delete(self, engine):
        """Test deleting a record."""
        await engine.put(CURRENT_USER, {"id": "currentUser", "user": None})
        assert await engine.delete(CURRENT_USER, "currentUser") is True
        assert await engine.get(CURRENT_USER, "currentUser") is None
        # Deleting a missing key is not an error
        assert await engine.delete(CURRENT_USER, "currentUser") is True

    async def test_record_without_key_is_rejected(self, engine):
        """Test that records need their key."""
        with pytest.raises(TransactionError, match="username"):
            await engine.put(USER_DATA, {"weekPlan": {}})

    async def test_unserializable_record_is_rejected(self, engine):
        """Test that records must be JSON."""
        with pytest.raises(TransactionError):
            await engine.put(USER_DATA, {"username": "Luna", "weekPlan": object()})

    async def test_unicode_round_trip(self, engine):
        """Test that non-ASCII text is kept."""
        record = {"username": "Luna", "weekPlan": {"0": {"breakfast": "puré de brócoli"}}}
        await engine.put(USER_DATA, record)
        assert await engine.get(USER_DATA, "Luna") == record


def _deferred_fk_tables(conn):
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("CREATE TABLE parent (id INTEGER PRIMARY KEY)")
    conn.execute(
        "CREATE TABLE child (id INTEGER PRIMARY KEY, "
        "parent_id INTEGER REFERENCES parent(id) DEFERRABLE INITIALLY DEFERRED)"
    )


class TestTransactions:
    """Commit and rollback on the shared connection."""

    def test_failed_commit_is_rolled_back(self):
        """Test that a COMMIT which raises leaves no transaction open."""
        conn = sqlite3.connect(":memory:", isolation_level=None)
        try:
            _deferred_fk_tables(conn)
            # The orphan row is only rejected at COMMIT time
            with pytest.raises(sqlite3.IntegrityError):
                with SQLiteEngine._transaction(conn, write=True):
                    conn.execute("INSERT INTO child (id, parent_id) VALUES (1, 99)")
            assert not conn.in_transaction

            with SQLiteEngine._transaction(conn, write=True):
                conn.execute("INSERT INTO parent (id) VALUES (99)")
            assert conn.execute("SELECT COUNT(*) FROM parent").fetchone()[0] == 1
            assert conn.execute("SELECT COUNT(*) FROM child").fetchone()[0] == 0
        finally:
            conn.close()

    async def test_engine_recovers_after_failed_commit(self, engine):
        """Test that operations keep working after a commit fails."""
        _deferred_fk_tables(engine._conn)

        def insert_orphan(conn):
            conn.execute("INSERT INTO child (id, parent_id) VALUES (1, 99)")
            return True

        with pytest.raises(TransactionError, match="FOREIGN KEY"):
            await engine._run("insert orphan", insert_orphan, write=True)

        record = {"username": "Luna", "weekPlan": {}}
        assert await engine.put(USER_DATA, record) is True
        assert await engine.get(USER_DATA, "Luna") == record
