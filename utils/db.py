"""
Database utilities for SQLite operations.

Provides connection management and schema initialization for the chunk store
and the sync run log.
"""

import logging
import sqlite3
from pathlib import Path

from utils.config import settings

logger = logging.getLogger(__name__)


def get_conn(path: str | None = None) -> sqlite3.Connection:
    """
    Get SQLite database connection with dict-friendly row factory.

    Args:
        path: Database file path, defaults to settings.SQLITE_PATH

    Returns:
        SQLite connection with row_factory set to sqlite3.Row

    Raises:
        sqlite3.Error: If connection fails
    """
    db_path = Path(path or settings.SQLITE_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), timeout=settings.SQLITE_TIMEOUT)
    conn.row_factory = sqlite3.Row
    return conn


def init_schema(path: str | None = None) -> None:
    """
    Initialize database schema by creating required tables if they don't exist.

    Creates:
    - sync_chunks: compressed record chunks, one generation per sync run
    - sync_runs: append-only log of sync runs

    Raises:
        sqlite3.Error: If schema creation fails
    """
    conn = get_conn(path)
    try:
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sync_chunks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    category TEXT NOT NULL,
                    generation_id TEXT NOT NULL,
                    sequence_index INTEGER NOT NULL,
                    chunk_total INTEGER NOT NULL,
                    payload BLOB NOT NULL,
                    record_count INTEGER NOT NULL,
                    duration_ms INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE (category, generation_id, sequence_index)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_sync_chunks_category "
                "ON sync_chunks (category, created_at DESC)"
            )

            conn.execute("""
                CREATE TABLE IF NOT EXISTS sync_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    sync_id TEXT NOT NULL UNIQUE,
                    started_at TEXT NOT NULL,
                    finished_at TEXT NOT NULL,
                    duration_ms INTEGER NOT NULL,
                    contacts_success INTEGER NOT NULL,
                    contacts_count INTEGER NOT NULL,
                    contacts_error TEXT,
                    deals_success INTEGER NOT NULL,
                    deals_count INTEGER NOT NULL,
                    deals_error TEXT,
                    overall_success INTEGER NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_sync_runs_started_at "
                "ON sync_runs (started_at DESC)"
            )
    finally:
        conn.close()

    logger.info("DB schema ready")
