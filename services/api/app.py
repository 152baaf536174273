"""
FastAPI application factory for the query, status and sync endpoints.

The sync endpoint returns 200 when every dataset synced, 207 when at least
one failed and 500 when the run could not complete at all.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from apps.extractor.sync_job import run_sync
from apps.saver.batch_store import CompressedBatchStore
from apps.saver.chunk_store import ChunkStore
from apps.saver.run_log import SyncRunLog
from utils.config import settings
from utils.mq import RedisPublisher
from utils.schemas import DATASET_CATEGORIES, SyncSummary

logger = logging.getLogger(__name__)

SyncFn = Callable[[], Awaitable[SyncSummary]]


def _outcome_body(summary: SyncSummary, category: str) -> dict[str, Any]:
    outcome = summary.datasets.get(category)
    if outcome is None:
        return {"success": False, "error": "not run"}
    if outcome.success:
        return {"success": True, "recordCount": outcome.record_count, "durationMs": outcome.duration_ms}
    return {"success": False, "error": outcome.error}


def create_app(
    chunk_store: Optional[ChunkStore] = None,
    run_log: Optional[SyncRunLog] = None,
    sync: Optional[SyncFn] = None,
    environment: Optional[str] = None,
    cron_secret: Optional[str] = None,
    publisher: Optional[RedisPublisher] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        chunk_store: Chunk store to read snapshots from
        run_log: Sync run log
        sync: Coroutine function running one full sync
        environment: Overrides settings.ENVIRONMENT
        cron_secret: Overrides settings.CRON_SECRET
        publisher: Redis publisher probed by /health
    """
    app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)

    chunk_store = chunk_store or ChunkStore()
    run_log = run_log or SyncRunLog()
    sync = sync or run_sync
    publisher = publisher or RedisPublisher()
    environment = environment or settings.ENVIRONMENT
    cron_secret = settings.CRON_SECRET if cron_secret is None else cron_secret

    def batch_store(category: str) -> CompressedBatchStore:
        return CompressedBatchStore(category, chunk_store)

    def current_info(category: str) -> Optional[dict[str, Any]]:
        info = batch_store(category).latest_info()
        if info is not None:
            return info

        # an empty generation writes no chunks; only the run log knows it happened
        run = run_log.last_success(category)
        if run is None or getattr(run, f"{category}_count") != 0:
            return None

        return {
            "generationId": run.sync_id,
            "lastSynced": run.finished_at.isoformat(),
            "recordCount": 0,
            "batches": 0,
            "syncDurationMs": run.duration_ms,
        }

    @app.get("/health")
    async def health() -> dict[str, Any]:
        redis_ok = await publisher.ping()
        return {
            "status": "ok" if redis_ok else "degraded",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "redis": redis_ok,
        }

    @app.get("/data/{data_type}")
    async def query_data(
        data_type: str,
        limit: int = Query(default=100, ge=0),
        offset: int = Query(default=0, ge=0),
    ) -> JSONResponse:
        if data_type not in DATASET_CATEGORIES:
            return JSONResponse(
                status_code=400,
                content={"error": 'Invalid type parameter. Must be "contacts" or "deals"'},
            )

        store = batch_store(data_type)
        info = await asyncio.to_thread(current_info, data_type)
        if info is None:
            return JSONResponse(
                status_code=404,
                content={"error": f"No {data_type} data found", "message": "No sync has been completed yet"},
            )

        records = await asyncio.to_thread(store.load_latest)
        if not records and info["recordCount"] > 0:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "No data could be retrieved",
                    "message": f"Failed to process all {info['batches']} batches.",
                },
            )

        page = records[offset:offset + limit]
        return JSONResponse(
            content={
                "type": data_type,
                "syncedAt": info["lastSynced"],
                "generationId": info["generationId"],
                "totalRecords": len(records),
                "returnedRecords": len(page),
                "offset": offset,
                "limit": limit,
                "batches": info["batches"],
                "data": page,
            }
        )

    @app.get("/sync-status")
    async def sync_status() -> dict[str, Any]:
        history = await asyncio.to_thread(run_log.history, 10)
        stats = await asyncio.to_thread(run_log.stats)

        latest: dict[str, Any] = {}
        for category in DATASET_CATEGORIES:
            try:
                latest[category] = await asyncio.to_thread(current_info, category)
            except Exception as e:
                logger.error("Failed to get latest data info: category=%s, error=%s", category, str(e))
                latest[category] = None

        recent = [run.model_dump(mode="json") for run in history]
        return {
            "currentStatus": recent[0] if recent else None,
            "recentHistory": recent,
            "statistics": stats,
            "latestData": latest,
        }

    @app.api_route("/sync", methods=["GET", "POST"])
    async def trigger_sync(request: Request) -> JSONResponse:
        if environment == "production":
            auth_header = request.headers.get("authorization")
            if not cron_secret or auth_header != f"Bearer {cron_secret}":
                logger.warning("Unauthorized sync request")
                return JSONResponse(status_code=401, content={"error": "Unauthorized"})

        started = datetime.now(timezone.utc)
        try:
            summary = await sync()
        except Exception as e:
            logger.error("Critical sync error: %s", str(e), exc_info=True)
            duration_ms = int((datetime.now(timezone.utc) - started).total_seconds() * 1000)
            return JSONResponse(
                status_code=500,
                content={"error": "Critical sync failure", "message": str(e), "durationMs": duration_ms},
            )

        body = {
            "syncId": summary.sync_id,
            "timestamp": summary.finished_at.isoformat(),
            "durationMs": summary.duration_ms,
            "durationMinutes": f"{summary.duration_ms / 60000:.2f}",
            "overallSuccess": summary.overall_success,
        }
        for category in DATASET_CATEGORIES:
            body[category] = _outcome_body(summary, category)

        return JSONResponse(status_code=200 if summary.overall_success else 207, content=body)

    return app
