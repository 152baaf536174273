"""
Sync Job - Full Snapshot Sync of Contacts and Deals

For each dataset:
1. Fetch reference datasets once (custom field definitions, pipelines,
   stages, users) and build lookup maps
2. Fetch the first page to learn the total record count
3. Fetch the remaining pages through the rate-limited collector
4. Enrich records with reference data
5. Store the enriched snapshot as a new compressed generation

run_sync runs both datasets concurrently; one dataset failing never blocks
the other. Every run is appended to the run log and announced on Redis.

Usage:
    from apps.extractor.sync_job import run_sync

    summary = await run_sync()
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence

from apps.extractor.client import ActiveCampaignClient
from apps.extractor.publisher import publish_sync_event
from apps.saver.batch_store import CompressedBatchStore
from apps.saver.chunk_store import ChunkStore
from apps.saver.run_log import SyncRunLog
from apps.transformer.enrichment import (
    CONTACT_CUSTOM_FIELDS,
    CONTACT_RELATIONS,
    DEAL_CUSTOM_FIELDS,
    DEAL_RELATIONS,
    CustomFieldSpec,
    RelationSpec,
    enrich,
)
from utils.backoff import SleepFn
from utils.config import settings
from utils.lookup import build_reference_map
from utils.mq import RedisPublisher
from utils.pagination import collect_all, count_pages
from utils.schemas import (
    DATASET_CATEGORIES,
    DatasetOutcome,
    DatasetSyncResult,
    RateLimitConfig,
    SyncSummary,
)

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """A dataset sync failed as a whole."""


@dataclass(frozen=True)
class DatasetDefinition:
    """Endpoints and enrichment rules of one synced dataset."""

    category: str
    endpoint: str
    include: str
    references: Mapping[str, str] = field(default_factory=dict)
    relations: Sequence[RelationSpec] = ()
    custom_fields: Optional[CustomFieldSpec] = None


DATASETS: dict[str, DatasetDefinition] = {
    "contacts": DatasetDefinition(
        category="contacts",
        endpoint="/contacts",
        include="fieldValues",
        references={"fields": "/fields"},
        relations=CONTACT_RELATIONS,
        custom_fields=CONTACT_CUSTOM_FIELDS,
    ),
    "deals": DatasetDefinition(
        category="deals",
        endpoint="/deals",
        include="dealCustomFieldData",
        references={
            "pipelines": "/dealGroups",
            "stages": "/dealStages",
            "users": "/users",
            "dealCustomFieldMeta": "/dealCustomFieldMeta",
        },
        relations=DEAL_RELATIONS,
        custom_fields=DEAL_CUSTOM_FIELDS,
    ),
}


def new_sync_id(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"sync-{int(now.timestamp() * 1000)}"


class SyncRunner:
    """Runs dataset syncs against one API client and one database."""

    def __init__(
        self,
        client: Any,
        chunk_store: Optional[ChunkStore] = None,
        run_log: Optional[SyncRunLog] = None,
        rate_limit: Optional[RateLimitConfig] = None,
        page_size: Optional[int] = None,
        chunk_size: Optional[int] = None,
        publisher: Optional[RedisPublisher] = None,
        publish_events: bool = True,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """
        Args:
            client: ActiveCampaignClient (or any object with the same fetch methods)
            chunk_store: Durable chunk store, defaults to settings.SQLITE_PATH
            run_log: Run log sink, defaults to settings.SQLITE_PATH
            rate_limit: Pacing and retry policy, defaults from settings
            page_size: Records per API page
            chunk_size: Records per stored chunk
            publisher: Redis publisher for sync events
            publish_events: Publish a sync_completed event after each run
            sleep: Awaitable sleep used for pacing and backoff
        """
        self.client = client
        self.chunk_store = chunk_store or ChunkStore()
        self.run_log = run_log or SyncRunLog()
        self.rate_limit = rate_limit or RateLimitConfig.from_settings()
        self.page_size = page_size or settings.SYNC_PAGE_SIZE
        self.chunk_size = chunk_size or settings.STORE_CHUNK_SIZE
        self.publisher = publisher
        self.publish_events = publish_events
        self.sleep = sleep

    def batch_store(self, category: str) -> CompressedBatchStore:
        return CompressedBatchStore(category, self.chunk_store, self.chunk_size)

    async def fetch_reference_maps(self, definition: DatasetDefinition, sync_id: str) -> dict[str, Any]:
        names = list(definition.references)
        collections = await asyncio.gather(
            *(self.client.fetch_metadata(definition.references[name]) for name in names)
        )

        maps = {}
        for name, items in zip(names, collections):
            maps[name] = build_reference_map(items, name=name)
            logger.info("[%s] Retrieved %d %s", sync_id, len(items), name)

        return maps

    async def fetch_records(self, definition: DatasetDefinition, sync_id: str) -> list[dict[str, Any]]:
        params = {"include": definition.include}

        first_page = await self.client.fetch_first_page(
            definition.endpoint, limit=self.page_size, params=params
        )
        total_pages = count_pages(first_page.total, self.page_size)

        logger.info(
            "[%s] Total %s: %d, pages: %d",
            sync_id, definition.category, first_page.total, total_pages,
        )

        records = list(first_page.records)
        if total_pages > 1:

            async def fetch_page(page: int) -> list[dict[str, Any]]:
                return await self.client.fetch_page(
                    definition.endpoint, page, limit=self.page_size, params=params
                )

            records.extend(
                await collect_all(
                    fetch_page,
                    total_pages - 1,
                    self.rate_limit,
                    start_page=2,
                    label=sync_id,
                    operation=f"Fetching {definition.category} pages 2-{total_pages}",
                    sleep=self.sleep,
                )
            )

        logger.info("[%s] Retrieved %d total %s", sync_id, len(records), definition.category)
        return records

    async def sync_dataset(self, category: str, sync_id: Optional[str] = None) -> DatasetSyncResult:
        """
        Fetch, enrich and store one dataset as a new generation.

        Args:
            category: "contacts" or "deals"
            sync_id: Sync identifier, also used as the generation id

        Returns:
            Record count and duration

        Raises:
            ValueError: If the category is unknown
            SyncError: If reference data, the first page or storage fails
        """
        definition = DATASETS.get(category)
        if definition is None:
            raise ValueError(f"Unknown dataset category: {category}")

        sync_id = sync_id or new_sync_id()
        start_time = time.monotonic()
        logger.info("[%s] Starting %s sync", sync_id, category)

        try:
            reference_maps = await self.fetch_reference_maps(definition, sync_id)
            records = await self.fetch_records(definition, sync_id)

            enriched = enrich(
                records,
                reference_maps,
                relations=definition.relations,
                custom_fields=definition.custom_fields,
            )

            await asyncio.to_thread(self.batch_store(category).store, enriched, sync_id)

        except Exception as e:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.error(
                "[%s] %s sync failed after %.2fs: %s",
                sync_id, category.capitalize(), duration_ms / 1000, e,
                exc_info=True,
            )
            raise SyncError(f"{category.capitalize()} sync failed: {e}") from e

        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(
            "[%s] %s sync completed: %d records in %.2fs",
            sync_id, category.capitalize(), len(enriched), duration_ms / 1000,
        )

        return DatasetSyncResult(category=category, record_count=len(enriched), duration_ms=duration_ms)

    async def run_sync(
        self,
        categories: Sequence[str] = DATASET_CATEGORIES,
        sync_id: Optional[str] = None,
    ) -> SyncSummary:
        """
        Sync every dataset concurrently and record the run.

        Dataset failures are captured in the summary, never raised.
        """
        started_at = datetime.now(timezone.utc)
        sync_id = sync_id or new_sync_id(started_at)
        start_time = time.monotonic()

        logger.info("[%s] Starting ActiveCampaign sync at %s", sync_id, started_at.isoformat())

        results = await asyncio.gather(
            *(self.sync_dataset(category, sync_id) for category in categories),
            return_exceptions=True,
        )

        datasets: dict[str, DatasetOutcome] = {}
        for category, result in zip(categories, results):
            if isinstance(result, DatasetSyncResult):
                datasets[category] = DatasetOutcome(
                    success=True,
                    record_count=result.record_count,
                    duration_ms=result.duration_ms,
                )
            elif isinstance(result, Exception):
                datasets[category] = DatasetOutcome(success=False, error=str(result))
            else:
                raise result

        summary = SyncSummary(
            sync_id=sync_id,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            duration_ms=int((time.monotonic() - start_time) * 1000),
            datasets=datasets,
        )

        await asyncio.to_thread(self.run_log.append, summary.to_run())

        if self.publish_events:
            await publish_sync_event(summary, self.publisher)

        logger.info(
            "[%s] Sync completed - Overall: %s (%.2fs)",
            sync_id,
            "SUCCESS" if summary.overall_success else "PARTIAL/FAILED",
            summary.duration_ms / 1000,
        )

        return summary


async def sync_dataset(category: str, sync_id: Optional[str] = None) -> DatasetSyncResult:
    """Sync a single dataset with settings-based collaborators."""
    async with ActiveCampaignClient() as client:
        runner = SyncRunner(client, publish_events=False)
        return await runner.sync_dataset(category, sync_id)


async def run_sync(sync_id: Optional[str] = None) -> SyncSummary:
    """Sync all datasets with settings-based collaborators."""
    async with ActiveCampaignClient() as client:
        runner = SyncRunner(client)
        return await runner.run_sync(sync_id=sync_id)
