"""
Database connection management.

Provides SQLite connection for data persistence.
"""

import sqlite3
from pathlib import Path

SQLITE_URL_PREFIX = "sqlite:///"


def resolve_db_path(db_path: str) -> Path:
    """Turn a file path or sqlite:/// URL into a filesystem path."""
    if db_path.startswith(SQLITE_URL_PREFIX):
        db_path = db_path[len(SQLITE_URL_PREFIX):].split("?", 1)[0]
    return Path(db_path).expanduser()


def get_connection(db_path: str) -> sqlite3.Connection:
    """Create and return a SQLite database connection.
    
    The parent directory is created on first use.

    Args:
        db_path: Path to SQLite database file, or a sqlite:/// URL
        
    Returns:
        SQLite connection that waits on locks held by other writers
    """
    path = resolve_db_path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=30.0)
    conn.execute("PRAGMA busy_timeout = 30000")
    return conn
