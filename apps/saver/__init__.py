"""
Saver App - Snapshot Persistence

Responsibilities:
- Split enriched datasets into chunks, gzip each chunk, write one row per chunk
- Retire older generations only after a full new generation is stored
- Reconstruct the latest generation for readers
- Append-only sync run log

Database Schema:
- sync_chunks(category, generation_id, sequence_index, chunk_total, payload, record_count, duration_ms, created_at)
- sync_runs(sync_id, started_at, finished_at, duration_ms, contacts_*, deals_*, overall_success)
"""
