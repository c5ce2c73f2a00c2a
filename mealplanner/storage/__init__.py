"""
Storage Package

LocalStore (the persistence boundary), the engine interface with its
SQLite implementation, the legacy flat-key storage and the one-time
legacy migration.
"""

from mealplanner.storage.interface import (
    DuplicateKeyError,
    EngineUnavailableError,
    LegacyStorageError,
    MigrationError,
    StorageEngine,
    StorageError,
    TransactionError,
)
from mealplanner.storage.schema import (
    CURRENT_USER,
    CURRENT_USER_KEY,
    SCHEMA_VERSION,
    TABLES,
    USER_DATA,
    USERS,
)
from mealplanner.storage.sqlite_engine import SQLiteEngine
from mealplanner.storage.local_store import LocalStore, StoreState
from mealplanner.storage.legacy import LegacyFlatStore
from mealplanner.storage.migration import LegacyMigrator, run_startup_migration

__all__ = [
    # Interface
    "StorageEngine",
    # Exceptions
    "DuplicateKeyError",
    "EngineUnavailableError",
    "LegacyStorageError",
    "MigrationError",
    "StorageError",
    "TransactionError",
    # Schema
    "CURRENT_USER",
    "CURRENT_USER_KEY",
    "SCHEMA_VERSION",
    "TABLES",
    "USER_DATA",
    "USERS",
    # Implementations
    "LegacyFlatStore",
    "LegacyMigrator",
    "LocalStore",
    "SQLiteEngine",
    "StoreState",
    "run_startup_migration",
]
