"""
Database connection management.

Provides the SQLite connection used by every repository.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "yt_stock_ai.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    A busy timeout is set so concurrent request handlers wait for the
    write lock instead of failing immediately.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=10.0)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
