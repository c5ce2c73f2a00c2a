"""
Storage Schema

Table declarations and the schema upgrade hook.

The schema version is a single integer bumped only on structural change.
It is stored in SQLite's `user_version` pragma and only decides whether
the upgrade hook runs; the hook itself creates whatever tables are
missing, so it is safe to run against a partially created database.
"""

import sqlite3
from dataclasses import dataclass


SCHEMA_VERSION = 1

USERS = "users"
USER_DATA = "userData"
CURRENT_USER = "currentUser"

# Fixed key of the only row the currentUser table ever holds.
CURRENT_USER_KEY = "currentUser"


@dataclass(frozen=True)
class TableSpec:
    """A named table and the record field holding its primary key."""
    name: str
    key_path: str


TABLES: dict[str, TableSpec] = {
    USERS: TableSpec(USERS, "username"),
    USER_DATA: TableSpec(USER_DATA, "username"),
    CURRENT_USER: TableSpec(CURRENT_USER, "id"),
}


def table_spec(name: str) -> TableSpec:
    """Look up a table declaration, KeyError for unknown tables."""
    try:
        return TABLES[name]
    except KeyError:
        raise KeyError(f"Unknown table: {name}") from None


def read_schema_version(conn: sqlite3.Connection) -> int:
    return int(conn.execute("PRAGMA user_version").fetchone()[0])


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
        (name,),
    ).fetchone()
    return row is not None


def _create_table(conn: sqlite3.Connection, spec: TableSpec) -> None:
    conn.execute(
        f"""
        CREATE TABLE "{spec.name}" (
            "{spec.key_path}" TEXT PRIMARY KEY,
            json_text TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
        """
    )


def upgrade_schema(conn: sqlite3.Connection) -> list[str]:
    """
    Bring the database up to SCHEMA_VERSION.

    No-op when the stored version is current. Runs inside the caller's
    transaction.

    Returns:
        Names of the tables that were created
    """
    if read_schema_version(conn) >= SCHEMA_VERSION:
        return []

    created = []
    for spec in TABLES.values():
        if not _table_exists(conn, spec.name):
            _create_table(conn, spec)
            created.append(spec.name)
    # PRAGMA does not accept bound parameters.
    conn.execute(f"PRAGMA user_version = {int(SCHEMA_VERSION)}")
    return created
