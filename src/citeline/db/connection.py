"""SQLite connection layer with sqlite-vec extension.

The index store and owner store open one short-lived connection per
operation, usually from an ``asyncio.to_thread`` worker, so every
connection is configured identically here and closed by the caller.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

from citeline.db.migrations import run_migrations


class Database:
    """SQLite database holding knowledge indexes and owner records."""

    def __init__(self, db_path: Path | str, *, busy_timeout_ms: int = 5000) -> None:
        """Store the database path. Call connect() to open a connection.

        Args:
            db_path: Path to the SQLite database file (created if missing).
            busy_timeout_ms: How long a writer waits on a locked database.
        """
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: sqlite3.Connection | None = None

    @property
    def exists(self) -> bool:
        return self.db_path.exists()

    def connect(self, *, migrate: bool = False) -> sqlite3.Connection:
        """Open a connection with sqlite-vec loaded.

        Args:
            migrate: Apply pending schema migrations before returning.
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
        if migrate:
            run_migrations(conn)
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
