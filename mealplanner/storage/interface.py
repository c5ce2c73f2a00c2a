"""
Abstract Storage Engine Interface

DESIGN DECISION: LocalStore talks to its backend only through this
interface. A backend is a key-value engine with named tables, each
table declaring the record field that holds its primary key:

    users        key path "username"
    userData     key path "username"
    currentUser  key path "id"

Records are JSON documents (dicts). Every operation runs in its own
transaction scoped to a single table; there is no multi-table atomicity.

The interface is intentionally small - point get, get-all, insert with
a uniqueness check, upsert and delete. Nothing else is needed.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


Record = dict[str, Any]


class StorageEngine(ABC):
    """
    Abstract key-value engine.

    Any backend (SQLite, in-memory, ...) must implement these methods.
    """

    @abstractmethod
    async def open(self) -> None:
        """
        Open the engine and make sure the schema exists.

        Runs the schema upgrade hook when the schema is absent or its
        version is older than the code's.

        Raises:
            EngineUnavailableError: If persistent storage cannot be used
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying resources. Safe to call twice."""
        pass

    @abstractmethod
    async def get(self, table: str, key: str) -> Optional[Record]:
        """
        Fetch one record by primary key.

        Args:
            table: Table name
            key: Primary key value

        Returns:
            The record if found, None otherwise

        Raises:
            TransactionError: On engine-level fault
        """
        pass

    @abstractmethod
    async def get_all(self, table: str) -> list[Record]:
        """
        Fetch every record of a table.

        Order is engine-native and not guaranteed stable.

        Raises:
            TransactionError: On engine-level fault
        """
        pass

    @abstractmethod
    async def add(self, table: str, record: Record) -> bool:
        """
        Insert a record. The key is read from the table's key path.

        Returns:
            True if inserted

        Raises:
            DuplicateKeyError: If a record with the same key exists
            TransactionError: On any other engine-level fault
        """
        pass

    @abstractmethod
    async def put(self, table: str, record: Record) -> bool:
        """
        Insert or overwrite a record (no uniqueness check).

        Returns:
            True if written

        Raises:
            TransactionError: On engine-level fault
        """
        pass

    @abstractmethod
    async def delete(self, table: str, key: str) -> bool:
        """
        Delete the record with this key (no-op if absent).

        Returns:
            True once the transaction completes

        Raises:
            TransactionError: On engine-level fault
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class EngineUnavailableError(StorageError):
    """The host cannot provide persistent local storage."""
    pass


class DuplicateKeyError(StorageError):
    """Attempted to insert a record whose key already exists."""

    def __init__(self, table: str, key: str):
        self.table = table
        self.key = key
        super().__init__(f"Key already exists in {table}: {key!r}")


class TransactionError(StorageError):
    """Any other engine-level fault (I/O, quota, corruption, ...)."""
    pass


class MigrationError(StorageError):
    """A step of the legacy data migration failed."""

    def __init__(self, step: str, cause: Exception):
        self.step = step
        self.cause = cause
        super().__init__(f"Legacy migration failed at {step}: {cause}")


class LegacyStorageError(Exception):
    """The legacy flat key/value file could not be read or written."""
    pass
