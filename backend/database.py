"""SQLite database for persisted PR metrics."""

import os
import sqlite3
import threading

_DB_PATH = os.environ.get(
    "DB_PATH",
    os.path.join(os.path.dirname(__file__), "data", "prinsights.db"),
)

_local = threading.local()


def db_path() -> str:
    # Re-read so tests and the launcher can point DB_PATH elsewhere after import.
    return os.environ.get("DB_PATH", _DB_PATH)


def get_db() -> sqlite3.Connection:
    """Return a thread-local SQLite connection."""
    conn = getattr(_local, "conn", None)
    if conn is None:
        path = db_path()
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        conn = sqlite3.connect(path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        _local.conn = conn
    return conn


def init_db():
    """Create tables if they don't exist."""
    conn = get_db()
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS pr_metrics (
            id           INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id      TEXT NOT NULL,
            repository   TEXT NOT NULL,
            kind         TEXT NOT NULL DEFAULT 'repo',
            metrics      TEXT NOT NULL,
            computed_at  REAL NOT NULL,
            created_at   TEXT DEFAULT (datetime('now')),
            updated_at   TEXT DEFAULT (datetime('now'))
        );
        CREATE UNIQUE INDEX IF NOT EXISTS pr_metrics_user_repo_idx
            ON pr_metrics(user_id, repository, kind);
    """)
    conn.commit()


def close_db():
    """Close the thread-local connection if open."""
    conn = getattr(_local, "conn", None)
    if conn is not None:
        conn.close()
        _local.conn = None
