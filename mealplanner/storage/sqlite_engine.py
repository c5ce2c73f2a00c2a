"""
SQLite Storage Engine

DESIGN DECISION: SQLite is the on-device engine. Each table stores one
JSON document per row next to its primary key column, which gives the
same contract as a browser object store: records are opaque documents
addressed by a key path.

TRADEOFFS:
- One connection, guarded by a lock, used from worker threads via
  asyncio.to_thread so callers never block the event loop
- Every operation is its own explicit transaction on a single table
- No secondary indexes (lookups are by primary key only)
"""

import asyncio
import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mealplanner.logging_setup import get_logger
from mealplanner.storage.interface import (
    DuplicateKeyError,
    EngineUnavailableError,
    Record,
    StorageEngine,
    StorageError,
    TransactionError,
)
from mealplanner.storage.schema import table_spec, upgrade_schema


logger = get_logger(__name__)


def _is_file_path(db_path: str) -> bool:
    return db_path != ":memory:" and not db_path.startswith("file:")


class SQLiteEngine(StorageEngine):
    """
    SQLite implementation of the storage engine.

    A db_path of None means the host has no persistent storage; open()
    then raises EngineUnavailableError.
    """

    def __init__(
        self,
        db_path: Optional[str],
        timeout: float = 5.0,
        open_attempts: int = 3,
    ):
        self._db_path = db_path
        self._timeout = timeout
        self._open_attempts = max(1, int(open_attempts))
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    @property
    def db_path(self) -> Optional[str]:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        path = self._db_path
        if _is_file_path(path):
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            path,
            timeout=self._timeout,
            isolation_level=None,
            check_same_thread=False,
            uri=path.startswith("file:"),
        )
        try:
            if _is_file_path(path):
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
            with self._transaction(conn, write=True):
                created = upgrade_schema(conn)
        except BaseException:
            conn.close()
            raise
        if created:
            logger.info("schema_created", db_path=path, tables=created)
        return conn

    def _open_sync(self) -> None:
        for attempt in Retrying(
            stop=stop_after_attempt(self._open_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
            retry=retry_if_exception_type(sqlite3.OperationalError),
            reraise=True,
        ):
            with attempt:
                conn = self._connect()
        with self._lock:
            self._conn = conn

    async def open(self) -> None:
        """Open the database file and run the schema upgrade hook."""
        if self._conn is not None:
            return
        if not self._db_path:
            raise EngineUnavailableError(
                "No persistent storage available; data will not survive this session"
            )
        try:
            await asyncio.to_thread(self._open_sync)
        except (sqlite3.Error, OSError) as e:
            raise EngineUnavailableError(f"Failed to open database {self._db_path}: {e}") from e

    async def close(self) -> None:
        with self._lock:
            conn, self._conn = self._conn, None
        if conn is not None:
            await asyncio.to_thread(conn.close)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @staticmethod
    @contextmanager
    def _transaction(conn: sqlite3.Connection, write: bool) -> Iterator[sqlite3.Connection]:
        conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
        try:
            yield conn
            # A failed COMMIT leaves the transaction open
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise

    def _call(self, fn: Callable[..., Any], write: bool, *args: Any) -> Any:
        with self._lock:
            if self._conn is None:
                raise TransactionError("Database is not open")
            with self._transaction(self._conn, write) as conn:
                return fn(conn, *args)

    async def _run(self, op: str, fn: Callable[..., Any], *args: Any, write: bool = False) -> Any:
        try:
            return await asyncio.to_thread(self._call, fn, write, *args)
        except StorageError:
            raise
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise TransactionError(f"{op} failed: {e}") from e

    # -------------------------------------------------------------------------
    # Record helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _key_of(table: str, record: Record) -> str:
        key_path = table_spec(table).key_path
        key = record.get(key_path) if isinstance(record, dict) else None
        if not isinstance(key, str) or not key:
            raise TransactionError(
                f"Record for {table} has no valid '{key_path}' key"
            )
        return key

    @staticmethod
    def _encode(record: Record) -> str:
        return json.dumps(record, ensure_ascii=False, allow_nan=False)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def get(self, table: str, key: str) -> Optional[Record]:
        spec = table_spec(table)

        def _get(conn: sqlite3.Connection, key: str) -> Optional[Record]:
            row = conn.execute(
                f'SELECT json_text FROM "{spec.name}" WHERE "{spec.key_path}" = ? LIMIT 1',
                (key,),
            ).fetchone()
            return json.loads(row[0]) if row is not None else None

        return await self._run(f"get {table}", _get, key)

    async def get_all(self, table: str) -> list[Record]:
        spec = table_spec(table)

        def _get_all(conn: sqlite3.Connection) -> list[Record]:
            rows = conn.execute(
                f'SELECT json_text FROM "{spec.name}" ORDER BY "{spec.key_path}" ASC'
            ).fetchall()
            return [json.loads(row[0]) for row in rows]

        return await self._run(f"get_all {table}", _get_all)

    async def add(self, table: str, record: Record) -> bool:
        spec = table_spec(table)
        key = self._key_of(table, record)

        def _add(conn: sqlite3.Connection) -> bool:
            text = self._encode(record)
            try:
                conn.execute(
                    f'INSERT INTO "{spec.name}" ("{spec.key_path}", json_text) VALUES (?, ?)',
                    (key, text),
                )
            except sqlite3.IntegrityError:
                raise DuplicateKeyError(table, key) from None
            return True

        return await self._run(f"add {table}", _add, write=True)

    async def put(self, table: str, record: Record) -> bool:
        spec = table_spec(table)
        key = self._key_of(table, record)

        def _put(conn: sqlite3.Connection) -> bool:
            text = self._encode(record)
            conn.execute(
                f"""
                INSERT INTO "{spec.name}" ("{spec.key_path}", json_text, updated_at)
                VALUES (?, ?, datetime('now'))
                ON CONFLICT("{spec.key_path}") DO UPDATE SET
                    json_text = excluded.json_text,
                    updated_at = datetime('now')
                """,
                (key, text),
            )
            return True

        return await self._run(f"put {table}", _put, write=True)

    async def delete(self, table: str, key: str) -> bool:
        spec = table_spec(table)

        def _delete(conn: sqlite3.Connection) -> bool:
            conn.execute(
                f'DELETE FROM "{spec.name}" WHERE "{spec.key_path}" = ?',
                (key,),
            )
            return True

        return await self._run(f"delete {table}", _delete, write=True)
