"""
SQLite database layer for annotation progress.

Holds the progress cursor singleton and the track catalog.
Uses WAL mode for better read concurrency with single-writer setup;
writers serialize through BEGIN IMMEDIATE transactions.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Default database path (mounted volume in production)
DEFAULT_DB_PATH = Path("/data/annotations.db")

# Seconds a writer waits for the write lock before failing
BUSY_TIMEOUT_SECONDS = 5.0

# Module-level database path (can be overridden for local dev)
_db_path: Optional[Path] = None


def get_db_path() -> Path:
    """
    Get the database path.

    In production, uses /data/annotations.db on the mounted volume.
    In local development, falls back to a local path if /data doesn't exist.

    Returns:
        Path to the SQLite database file.
    """
    global _db_path

    if _db_path is not None:
        return _db_path

    if DEFAULT_DB_PATH.parent.exists() and DEFAULT_DB_PATH.parent.is_dir():
        _db_path = DEFAULT_DB_PATH
        logger.info(f"Using production database path: {_db_path}")
        return _db_path

    project_root = Path(__file__).parent.parent.parent
    local_db_dir = project_root / "local_data"
    local_db_dir.mkdir(exist_ok=True)
    _db_path = local_db_dir / "annotations.db"
    logger.info(f"Using local development database path: {_db_path}")
    return _db_path


def set_db_path(path: Optional[Path]) -> None:
    """
    Override the database path (for testing).

    Args:
        path: Custom path for the SQLite database, or None to restore the default.
    """
    global _db_path
    _db_path = path
    logger.info(f"Database path set to: {_db_path}")


def get_db() -> sqlite3.Connection:
    """
    Get a database connection.

    The connection runs in autocommit mode (isolation_level=None) so that
    callers open transactions explicitly with BEGIN IMMEDIATE.

    Returns:
        SQLite connection object.
    """
    db_path = get_db_path()
    conn = sqlite3.connect(db_path, timeout=BUSY_TIMEOUT_SECONDS, isolation_level=None)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """
    Initialize the database schema.

    Creates tables if they don't exist. Safe to call multiple times.
    """
    db_path = get_db_path()
    logger.info(f"Initializing database at {db_path}")

    conn = get_db()
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS progress (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                current_folder TEXT NOT NULL,
                current_file_index INTEGER NOT NULL DEFAULT 0,
                completed_folders TEXT NOT NULL DEFAULT '[]',
                total_annotated INTEGER NOT NULL DEFAULT 0,
                last_annotated_at TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS tracks (
                id TEXT PRIMARY KEY,
                folder_path TEXT NOT NULL,
                file_name TEXT NOT NULL,
                storage_key TEXT NOT NULL,
                annotated INTEGER NOT NULL DEFAULT 0,
                payload TEXT NOT NULL DEFAULT '{}',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_tracks_annotated
                ON tracks(annotated);
        """)
        logger.info("Database schema initialized successfully")
    finally:
        conn.close()
