"""
Sync Scheduler - Cron and On-Demand Execution

Manages scheduled and manual sync runs using APScheduler.

Features:
- Cron-based scheduling (configurable via SYNC_SCHEDULE_CRON)
- RUN_ONCE mode for immediate execution (standalone sync script)
- Wall-clock budget per run (SYNC_TIMEOUT_SECONDS)
- Graceful shutdown handling

Usage:
    # Scheduled mode (default)
    python -m apps.extractor.scheduler

    # Run once and exit
    RUN_ONCE=true python -m apps.extractor.scheduler
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from apps.extractor.sync_job import run_sync
from utils.config import settings
from utils.logging import setup_logging
from utils.schemas import SyncSummary

logger = logging.getLogger(__name__)

JOB_ID = "sync_job"


class SyncScheduler:
    """
    Scheduler for periodic or on-demand sync runs.

    Handles:
    - APScheduler setup and management
    - Cron-based scheduling
    - RUN_ONCE immediate execution
    - Signal handling for graceful shutdown
    """

    def __init__(
        self,
        run_once: bool = False,
        sync: Callable[[], Awaitable[SyncSummary]] = run_sync,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            run_once: If True, run one sync and exit
            sync: Coroutine function performing one sync run
            timeout_seconds: Wall-clock budget per run, defaults to settings
        """
        self.run_once = run_once
        self.sync = sync
        self.timeout_seconds = timeout_seconds or settings.SYNC_TIMEOUT_SECONDS
        self.scheduler: AsyncIOScheduler | None = None
        self.shutdown_event = asyncio.Event()
        self.last_summary: SyncSummary | None = None

        logger.info(
            "SyncScheduler initialized",
            extra={
                "run_once": run_once,
                "cron_schedule": settings.SYNC_SCHEDULE_CRON,
                "timeout_seconds": self.timeout_seconds,
            },
        )

    async def execute_sync(self) -> SyncSummary:
        """
        Execute one sync run within the wall-clock budget.

        Raises:
            asyncio.TimeoutError: If the run exceeds the budget
        """
        logger.info("Starting sync execution")

        try:
            summary = await asyncio.wait_for(self.sync(), timeout=self.timeout_seconds)
            self.last_summary = summary

            logger.info(
                "Sync execution completed",
                extra={
                    "sync_id": summary.sync_id,
                    "overall_success": summary.overall_success,
                    "duration_ms": summary.duration_ms,
                },
            )
            return summary

        except asyncio.TimeoutError:
            logger.error(
                "Sync execution exceeded its time budget",
                extra={"timeout_seconds": self.timeout_seconds},
            )
            raise

        except Exception as e:
            logger.error(
                "Sync execution failed",
                extra={"error": str(e)},
                exc_info=True,
            )
            raise

        finally:
            if self.run_once:
                logger.info("RUN_ONCE mode: signaling shutdown")
                self.shutdown_event.set()

    def setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown on SIGINT/SIGTERM."""

        def signal_handler(signum: int, frame: object) -> None:
            logger.info(f"Received signal {signum}, initiating graceful shutdown")
            self.shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def start(self) -> None:
        """
        Start scheduler or execute once.

        In scheduled mode, runs continuously until shutdown signal.
        In RUN_ONCE mode, executes immediately and exits.
        """
        self.setup_signal_handlers()

        if self.run_once:
            logger.info("Running in RUN_ONCE mode")
            await self.execute_sync()
            return

        logger.info("Running in scheduled mode")

        self.scheduler = AsyncIOScheduler()

        trigger = CronTrigger.from_crontab(settings.SYNC_SCHEDULE_CRON)
        self.scheduler.add_job(
            self.execute_sync,
            trigger=trigger,
            id=JOB_ID,
            name="Periodic ActiveCampaign Sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        # Start scheduler first to get next_run_time
        self.scheduler.start()
        logger.info("Scheduler started")

        job = self.scheduler.get_job(JOB_ID)
        next_run = getattr(job, "next_run_time", None)

        logger.info(
            "Scheduled sync job",
            extra={
                "schedule": settings.SYNC_SCHEDULE_CRON,
                "next_run": str(next_run) if next_run is not None else None,
            },
        )
        logger.info("Waiting for jobs...")

        await self.shutdown_event.wait()

        logger.info("Shutting down scheduler")
        if self.scheduler:
            self.scheduler.shutdown(wait=True)
        logger.info("Scheduler shutdown complete")


async def main() -> None:
    """Main entry point for scheduler."""
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    run_once = os.getenv("RUN_ONCE", "false").lower() in ("true", "1", "yes")

    scheduler = SyncScheduler(run_once=run_once)

    try:
        await scheduler.start()
    except Exception as e:
        logger.error("Scheduler failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)

    if run_once and scheduler.last_summary and not scheduler.last_summary.overall_success:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
