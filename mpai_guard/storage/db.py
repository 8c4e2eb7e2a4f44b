"""
Database connection management.

Provides SQLite connection for data persistence.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = ".mpai-guard.db"


def get_connection(db_path: str = DEFAULT_DB_PATH, timeout: float = 30.0) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    Concurrent writers wait up to ``timeout`` seconds for the database lock
    instead of failing immediately.

    Args:
        db_path: Path to SQLite database file
        timeout: Seconds to wait for a locked database

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=timeout)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
