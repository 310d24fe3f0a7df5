"""SQLite database utilities."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from BookReport.core.errors import StoreUnavailable

MEMORY_PATH = ":memory:"


class DatabaseManager:
    """Owns the SQLite connection used by one store session.

    Supports context manager protocol for automatic connection cleanup.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Open the database.

        Args:
            db_path: Path to the database file, or ":memory:".

        Raises:
            StoreUnavailable: If the file cannot be opened or the SQLite
                build lacks JSON support.
        """
        self.db_path = str(db_path)
        self.conn: sqlite3.Connection | None = ensure_db(db_path)

    def get_connection(self) -> sqlite3.Connection:
        """Get the open database connection.

        Raises:
            StoreUnavailable: If the manager was already closed.
        """
        if self.conn is None:
            raise StoreUnavailable(f"SQLite database {self.db_path} is closed")
        return self.conn

    def close(self) -> None:
        """Close the database connection. Safe to call twice."""
        if self.conn is not None:
            conn, self.conn = self.conn, None
            conn.close()

    def __enter__(self) -> DatabaseManager:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def ensure_db(db_path: Path | str) -> sqlite3.Connection:
    """Ensure database file exists and return connection.

    Args:
        db_path: Path to database file, or ":memory:".

    Returns:
        SQLite connection.

    Raises:
        StoreUnavailable: If the directory or database cannot be opened, or
            JSON functions are missing.
    """
    try:
        if str(db_path) != MEMORY_PATH:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(db_path))
    except (OSError, sqlite3.Error) as e:
        raise StoreUnavailable(f"Cannot open SQLite database {db_path}: {e}") from e
    try:
        conn.execute("SELECT json_extract('{\"a\": 1}', '$.a')").fetchone()
    except sqlite3.Error as e:
        conn.close()
        raise StoreUnavailable(f"SQLite build has no JSON support: {e}") from e
    return conn
