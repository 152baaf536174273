"""
Sync Run Log - Append-Only Sync History

One row per sync run in sync_runs, used for monitoring. Appending is
best-effort: a failure is logged and never fails the sync that produced it.
"""

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from utils.db import get_conn, init_schema
from utils.schemas import SyncRun

logger = logging.getLogger(__name__)

STATS_WINDOW = timedelta(days=7)

SUCCESS_COLUMNS = {"contacts": "contacts_success", "deals": "deals_success"}


class SyncRunLog:
    """SQLite-backed sync history."""

    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db_path = db_path
        init_schema(db_path)

    def append(self, run: SyncRun) -> bool:
        """
        Record a sync run.

        Returns:
            True if the row was written, False if storing it failed
        """
        try:
            conn = get_conn(self.db_path)
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO sync_runs (
                            sync_id, started_at, finished_at, duration_ms,
                            contacts_success, contacts_count, contacts_error,
                            deals_success, deals_count, deals_error,
                            overall_success
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            run.sync_id,
                            run.started_at.isoformat(),
                            run.finished_at.isoformat(),
                            run.duration_ms,
                            int(run.contacts_success),
                            run.contacts_count,
                            run.contacts_error,
                            int(run.deals_success),
                            run.deals_count,
                            run.deals_error,
                            int(run.overall_success),
                        ),
                    )
            finally:
                conn.close()
        except Exception as e:
            logger.error("Failed to store sync metadata: sync_id=%s, error=%s", run.sync_id, str(e))
            return False

        return True

    def history(self, limit: int = 10) -> list[SyncRun]:
        """Most recent runs, newest first."""
        conn = get_conn(self.db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM sync_runs ORDER BY started_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        finally:
            conn.close()

        return [_row_to_run(row) for row in rows]

    def last_success(self, category: str) -> Optional[SyncRun]:
        """Most recent run in which the given dataset synced successfully."""
        column = SUCCESS_COLUMNS.get(category)
        if column is None:
            raise ValueError(f"Unknown dataset category: {category}")

        conn = get_conn(self.db_path)
        try:
            row = conn.execute(
                f"SELECT * FROM sync_runs WHERE {column} = 1 ORDER BY started_at DESC LIMIT 1"
            ).fetchone()
        finally:
            conn.close()

        return _row_to_run(row) if row is not None else None

    def stats(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """Aggregates over the last seven days of runs."""
        since = (now or datetime.now(timezone.utc)) - STATS_WINDOW

        conn = get_conn(self.db_path)
        try:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_syncs,
                    COALESCE(SUM(overall_success), 0) AS successful_syncs,
                    AVG(duration_ms) AS avg_duration_ms,
                    MAX(started_at) AS last_sync_time,
                    AVG(contacts_count) AS avg_contacts_count,
                    AVG(deals_count) AS avg_deals_count
                FROM sync_runs
                WHERE started_at > ?
                """,
                (since.isoformat(),),
            ).fetchone()
        finally:
            conn.close()

        total = row["total_syncs"]
        successful = row["successful_syncs"]

        return {
            "totalSyncs": total,
            "successfulSyncs": successful,
            "successRate": f"{successful / total * 100:.2f}%" if total else "N/A",
            "avgDurationSeconds": (
                round(row["avg_duration_ms"] / 1000, 2) if row["avg_duration_ms"] is not None else None
            ),
            "lastSyncTime": row["last_sync_time"],
            "avgContactsCount": round(row["avg_contacts_count"] or 0),
            "avgDealsCount": round(row["avg_deals_count"] or 0),
        }


def _row_to_run(row: sqlite3.Row) -> SyncRun:
    return SyncRun(
        sync_id=row["sync_id"],
        started_at=datetime.fromisoformat(row["started_at"]),
        finished_at=datetime.fromisoformat(row["finished_at"]),
        duration_ms=row["duration_ms"],
        contacts_success=bool(row["contacts_success"]),
        contacts_count=row["contacts_count"],
        contacts_error=row["contacts_error"],
        deals_success=bool(row["deals_success"]),
        deals_count=row["deals_count"],
        deals_error=row["deals_error"],
        overall_success=bool(row["overall_success"]),
    )
