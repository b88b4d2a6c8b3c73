"""
Database connection management for the API.

Provides a get_db() dependency that opens a per-request SQLite connection and
closes it after the response is sent. The database path comes from the
APP_DB_PATH environment variable (default: permit_dashboard.sqlite) and can be
overridden by ``create_app(db_path=...)``.
"""

import sqlite3
from collections.abc import Generator
from pathlib import Path

from fastapi import HTTPException

from utils.config import AppConfig
from utils.database import init_pragmas

_DB_PATH: Path = AppConfig.from_env().db_path


def get_db_path() -> Path:
    """Return the configured database path."""
    return _DB_PATH


def set_db_path(db_path: Path) -> None:
    """Point every subsequent connection at *db_path*."""
    global _DB_PATH
    _DB_PATH = Path(db_path)


def _make_conn(db_path: Path) -> sqlite3.Connection:
    """Open a connection with ``sqlite3.Row`` rows and the standard pragmas."""
    conn = sqlite3.connect(str(db_path), check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    init_pragmas(conn)
    return conn


def get_db() -> Generator[sqlite3.Connection, None, None]:
    """FastAPI dependency: yield a SQLite connection, close on exit.

    Raises HTTP 503 with a hint when the database file is missing instead of
    letting SQLite fail with a cryptic error.

    Usage in a route::

        @router.get("/example")
        def example(conn: sqlite3.Connection = Depends(get_db)):
            ...
    """
    if not _DB_PATH.exists():
        raise HTTPException(
            status_code=503,
            detail=(
                f"Database not found at '{_DB_PATH}'. "
                "Run 'python import_data.py' to build it."
            ),
        )
    conn = _make_conn(_DB_PATH)
    try:
        yield conn
    finally:
        conn.close()
