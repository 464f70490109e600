"""SQLite connection management with context manager."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path

from fork_and_spoon.errors import LocalStoreError


class DatabaseConnection:
    """Manages SQLite connections for the local store.

    Every ``get_connection()`` block is one transaction: it is committed
    (durable) when the block exits normally and rolled back otherwise.
    """

    def __init__(self, db_path: str | Path, timeout: float = 5.0):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout

    @contextmanager
    def get_connection(self, immediate: bool = False):
        """Yield a connection that auto-commits or rolls back.

        With ``immediate=True`` the write lock is taken up front, so a
        multi-statement write cannot interleave with another writer.
        sqlite3 errors are re-raised as LocalStoreError.
        """
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        except sqlite3.Error as e:
            raise LocalStoreError(
                f"Cannot open local store: {e}",
                details={"path": str(self.db_path)},
            ) from e
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise LocalStoreError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def execute(self, sql: str, params: tuple = ()):
        """Run a single statement and return the fetched rows."""
        with self.get_connection() as conn:
            cursor = conn.execute(sql, params)
            return cursor.fetchall()

    def execute_many(self, sql: str, seq_of_params) -> int:
        """Run one statement for each parameter tuple in a single transaction."""
        with self.get_connection() as conn:
            cursor = conn.executemany(sql, seq_of_params)
            return cursor.rowcount

    def scalar(self, sql: str, params: tuple = ()):
        """Return the first column of the first row, or None."""
        rows = self.execute(sql, params)
        return rows[0][0] if rows else None

    def execute_script(self, sql_script: str):
        """Run a multi-statement SQL script."""
        with self.get_connection() as conn:
            conn.executescript(sql_script)
