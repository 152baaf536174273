"""
Compressed Batch Store - Generation-Based Snapshot Storage

Writes a dataset snapshot as gzip-compressed JSON chunks tagged with a
generation id, then retires every older generation of the same category.
Reads reconstruct the newest complete generation.

Write path:
    records → chunks of chunk_size → orjson → gzip → ChunkStore.put (one
    commit per chunk) → delete other generations

The delete runs only after every chunk has landed, so the previous
generation stays readable until a full replacement exists. A failed write
raises StorageError and leaves its already-written chunks behind; readers
ignore such incomplete generations and the next successful write deletes
them.

Usage:
    from apps.saver.batch_store import CompressedBatchStore

    store = CompressedBatchStore("contacts", ChunkStore())
    store.store(enriched_contacts, "sync-1736910900000")
    contacts = store.load_latest()
"""

import gzip
import logging
import time
import zlib
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import orjson

from apps.saver.chunk_store import ChunkStore
from utils.config import settings
from utils.schemas import StoredChunk

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


class StorageError(Exception):
    """Raised when a chunk cannot be compressed or written."""


def compress_chunk(records: Sequence[Any]) -> tuple[bytes, int]:
    """
    Serialize and gzip one chunk.

    Returns:
        (compressed payload, uncompressed size in bytes)

    Raises:
        StorageError: If serialization fails or the output lacks the gzip header
    """
    try:
        raw = orjson.dumps(list(records))
    except (orjson.JSONEncodeError, TypeError) as e:
        raise StorageError(f"Failed to serialize chunk: {e}") from e

    compressed = gzip.compress(raw)
    if compressed[:2] != GZIP_MAGIC:
        raise StorageError("Compression failed - invalid gzip header")

    return compressed, len(raw)


def decompress_chunk(payload: bytes) -> list[Any]:
    """
    Decode one chunk back into its records.

    Payloads without the gzip marker are parsed as plain JSON.

    Raises:
        ValueError: If the payload is corrupt or does not hold a JSON array
    """
    try:
        raw = gzip.decompress(payload) if payload[:2] == GZIP_MAGIC else payload
        records = orjson.loads(raw)
    except (OSError, EOFError, zlib.error, orjson.JSONDecodeError) as e:
        raise ValueError(f"Unreadable chunk payload: {e}") from e

    if not isinstance(records, list):
        raise ValueError(f"Chunk payload is not an array: {type(records).__name__}")

    return records


class CompressedBatchStore:
    """Chunked, compressed snapshot storage for one dataset category."""

    def __init__(
        self,
        category: str,
        chunk_store: Optional[ChunkStore] = None,
        chunk_size: Optional[int] = None,
    ) -> None:
        self.category = category
        self.chunk_store = chunk_store or ChunkStore()
        self.chunk_size = chunk_size or settings.STORE_CHUNK_SIZE
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")

    def store(self, records: Sequence[Any], generation_id: str) -> int:
        """
        Write records as a new generation and retire all older generations.

        Args:
            records: Enriched records to persist
            generation_id: Identifier shared by every chunk of this write

        Returns:
            Number of chunks written

        Raises:
            StorageError: If any chunk fails to compress or write
        """
        start_time = time.monotonic()
        created_at = datetime.now(timezone.utc)
        chunks = [
            records[start:start + self.chunk_size]
            for start in range(0, len(records), self.chunk_size)
        ]
        total = len(chunks)

        logger.info(
            "[%s] Storing %d %s in %d compressed batches",
            generation_id, len(records), self.category, total,
        )

        for sequence_index, chunk in enumerate(chunks):
            try:
                payload, original_size = compress_chunk(chunk)

                if len(payload) >= original_size:
                    logger.warning(
                        "[%s] Compression didn't reduce size for batch %d",
                        generation_id, sequence_index + 1,
                    )

                logger.info(
                    "[%s] Batch %d/%d: %d %s, %.2fMB -> %.2fMB",
                    generation_id,
                    sequence_index + 1,
                    total,
                    len(chunk),
                    self.category,
                    original_size / 1024 / 1024,
                    len(payload) / 1024 / 1024,
                )

                self.chunk_store.put(
                    category=self.category,
                    generation_id=generation_id,
                    sequence_index=sequence_index,
                    payload=payload,
                    record_count=len(chunk),
                    duration_ms=int((time.monotonic() - start_time) * 1000),
                    chunk_total=total,
                    created_at=created_at,
                )
            except StorageError:
                logger.error(
                    "[%s] Failed to store %s batch %d/%d",
                    generation_id, self.category, sequence_index + 1, total,
                    exc_info=True,
                )
                raise
            except Exception as e:
                logger.error(
                    "[%s] Failed to store %s batch %d/%d",
                    generation_id, self.category, sequence_index + 1, total,
                    exc_info=True,
                )
                raise StorageError(f"Database storage failed: {e}") from e

        # the new generation is complete and already served; stale chunks wait for the next run
        try:
            retired = self.chunk_store.delete_other_generations(self.category, generation_id)
        except Exception as e:
            logger.warning(
                "[%s] Failed to retire old %s generations: %s",
                generation_id, self.category, e,
            )
            retired = 0

        logger.info(
            "[%s] Stored %d %s in %d compressed batches (retired %d old chunks)",
            generation_id, len(records), self.category, total, retired,
        )

        return total

    def latest_generation(self, chunks: Sequence[StoredChunk]) -> list[StoredChunk]:
        """
        Chunks of the newest complete generation.

        Generations are ordered by write timestamp; a generation with fewer
        stored chunks than it planned is an aborted write and is skipped.
        """
        generations: dict[tuple[datetime, str], list[StoredChunk]] = {}
        for chunk in chunks:
            generations.setdefault((chunk.created_at, chunk.generation_id), []).append(chunk)

        for key in sorted(generations, reverse=True):
            members = generations[key]
            if len(members) >= members[0].chunk_total:
                return members

            logger.warning(
                "Skipping incomplete %s generation %s (%d/%d chunks)",
                self.category, key[1], len(members), members[0].chunk_total,
            )

        return []

    def load_latest(self) -> list[Any]:
        """
        Reconstruct the newest generation's records.

        Returns:
            Concatenated records of every readable chunk; empty if nothing
            has been stored. Unreadable chunks are logged and skipped.
        """
        selected = self.latest_generation(self.chunk_store.list_chunks(self.category))
        if not selected:
            return []

        records: list[Any] = []
        readable = 0

        for chunk in selected:
            try:
                batch = decompress_chunk(chunk.payload)
            except ValueError as e:
                logger.error(
                    "Error processing %s batch %s/%d: %s",
                    self.category, chunk.generation_id, chunk.sequence_index, e,
                )
                continue

            if len(batch) != chunk.record_count:
                logger.warning(
                    "Record count mismatch in %s batch %s/%d: expected %d, decoded %d",
                    self.category, chunk.generation_id, chunk.sequence_index,
                    chunk.record_count, len(batch),
                )

            records.extend(batch)
            readable += 1

        logger.info(
            "Loaded %d %s from %d/%d batches of generation %s",
            len(records), self.category, readable, len(selected), selected[0].generation_id,
        )

        return records

    def latest_info(self) -> Optional[dict[str, Any]]:
        """Timestamp, record count and duration of the current generation."""
        selected = self.latest_generation(self.chunk_store.list_chunks(self.category))
        if not selected:
            return None

        return {
            "generationId": selected[0].generation_id,
            "lastSynced": selected[0].created_at.isoformat(),
            "recordCount": sum(chunk.record_count for chunk in selected),
            "batches": len(selected),
            "syncDurationMs": max(chunk.duration_ms for chunk in selected),
        }
