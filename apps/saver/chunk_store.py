"""
Chunk Store - Durable SQLite Storage for Compressed Record Chunks

Each chunk is one row of sync_chunks, written in its own transaction so a
chunk is either fully stored or absent. Rows are grouped by dataset category
and generation id.
"""

import logging
from datetime import datetime
from typing import Optional

from utils.db import get_conn, init_schema
from utils.schemas import StoredChunk

logger = logging.getLogger(__name__)


class ChunkStore:
    """SQLite-backed chunk persistence."""

    def __init__(self, db_path: Optional[str] = None) -> None:
        """
        Args:
            db_path: Database file path, defaults to settings.SQLITE_PATH
        """
        self.db_path = db_path
        init_schema(db_path)

    def put(
        self,
        category: str,
        generation_id: str,
        sequence_index: int,
        payload: bytes,
        record_count: int,
        duration_ms: int,
        chunk_total: int,
        created_at: datetime,
    ) -> None:
        """
        Insert one chunk and commit.

        Raises:
            sqlite3.Error: If the insert fails (e.g. duplicate sequence index)
        """
        conn = get_conn(self.db_path)
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO sync_chunks (
                        category, generation_id, sequence_index, chunk_total,
                        payload, record_count, duration_ms, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        category,
                        generation_id,
                        sequence_index,
                        chunk_total,
                        payload,
                        record_count,
                        duration_ms,
                        created_at.isoformat(),
                    ),
                )
        finally:
            conn.close()

    def delete_other_generations(self, category: str, generation_id: str) -> int:
        """
        Delete every chunk of the category not belonging to generation_id.

        Returns:
            Number of deleted chunks
        """
        conn = get_conn(self.db_path)
        try:
            with conn:
                cursor = conn.execute(
                    "DELETE FROM sync_chunks WHERE category = ? AND generation_id != ?",
                    (category, generation_id),
                )
                return cursor.rowcount
        finally:
            conn.close()

    def list_chunks(self, category: str) -> list[StoredChunk]:
        """All chunks of a category, newest generation first."""
        conn = get_conn(self.db_path)
        try:
            rows = conn.execute(
                """
                SELECT category, generation_id, sequence_index, chunk_total,
                       payload, record_count, duration_ms, created_at
                FROM sync_chunks
                WHERE category = ?
                ORDER BY created_at DESC, generation_id DESC, sequence_index ASC
                """,
                (category,),
            ).fetchall()
        finally:
            conn.close()

        return [
            StoredChunk(
                category=row["category"],
                generation_id=row["generation_id"],
                sequence_index=row["sequence_index"],
                chunk_total=row["chunk_total"],
                payload=bytes(row["payload"]),
                record_count=row["record_count"],
                duration_ms=row["duration_ms"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]
