"""Schema and migration helpers for artifact approval storage."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime

_TABLE = "artifacts"
_COLUMNS = (
    "kind",
    "hash",
    "payload",
    "language",
    "state",
    "user",
    "item",
    "acl",
    "created_at",
    "updated_at",
)


def utc_now_epoch() -> int:
    """Return UTC epoch seconds."""
    return int(datetime.now(UTC).timestamp())


def init_schema(conn: sqlite3.Connection) -> None:
    """Create or migrate the artifact schema to its current shape."""
    if not _table_exists(conn, _TABLE):
        _create_schema(conn)
        return
    if _schema_is_current(conn):
        return
    _migrate_older_schema(conn)


def _create_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE artifacts (
            kind TEXT NOT NULL,
            hash TEXT NOT NULL,
            payload TEXT NOT NULL,
            language TEXT,
            state TEXT NOT NULL CHECK (state IN ('pending', 'approved')),
            user TEXT,
            item TEXT,
            acl INTEGER NOT NULL DEFAULT 0,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL,
            PRIMARY KEY (kind, hash)
        )
        """
    )
    conn.execute("CREATE INDEX artifacts_by_state ON artifacts (kind, state)")


def _migrate_older_schema(conn: sqlite3.Connection) -> None:
    """Rebuild the table, carrying over every column both shapes share."""
    existing = _column_names(conn)
    conn.execute("ALTER TABLE artifacts RENAME TO artifacts_older")
    conn.execute("DROP INDEX IF EXISTS artifacts_by_state")
    _create_schema(conn)
    now = utc_now_epoch()
    defaults = {
        "payload": "''",
        "language": "NULL",
        "user": "NULL",
        "item": "NULL",
        "acl": "0",
        "created_at": str(now),
        "updated_at": str(now),
    }
    target = [c for c in _COLUMNS if c in existing or c in defaults]
    select = [c if c in existing else defaults[c] for c in target]
    conn.execute(
        f"INSERT OR IGNORE INTO artifacts ({', '.join(target)}) "
        f"SELECT {', '.join(select)} FROM artifacts_older"
    )
    conn.execute("DROP TABLE artifacts_older")


def _table_exists(conn: sqlite3.Connection, table_name: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
        (table_name,),
    ).fetchone()
    return row is not None


def _column_names(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({_TABLE})").fetchall()
    return {str(row[1]) for row in rows}


def _schema_is_current(conn: sqlite3.Connection) -> bool:
    return _column_names(conn) == set(_COLUMNS)
