"""
Event Publisher for the Sync Service

Publishes a sync_completed event to Redis Pub/Sub after every sync run so
downstream consumers know a new snapshot generation is available.

Publishing is best-effort: a Redis outage is logged and does not change the
outcome of the sync.

Usage:
    from apps.extractor.publisher import publish_sync_event

    await publish_sync_event(summary)
"""

import logging
from typing import Optional

from utils.mq import RedisPublisher
from utils.schemas import SyncEvent, SyncSummary

logger = logging.getLogger(__name__)


async def publish_sync_event(
    summary: SyncSummary,
    publisher: Optional[RedisPublisher] = None,
) -> bool:
    """
    Publish a sync_completed event for a finished run.

    Args:
        summary: Result of the sync run
        publisher: Publisher to use; a new one is created and closed if omitted

    Returns:
        True if the event was published
    """
    owns_publisher = publisher is None
    publisher = publisher or RedisPublisher()

    event = SyncEvent(
        sync_id=summary.sync_id,
        overall_success=summary.overall_success,
        datasets=summary.datasets,
    )

    try:
        receivers = await publisher.publish_event(event)

        logger.info(
            "Published sync event",
            extra={
                "channel": publisher.channel,
                "sync_id": summary.sync_id,
                "message_type": event.type,
                "receivers": receivers,
            },
        )
        return True

    except Exception as e:
        logger.error(
            "Failed to publish event",
            extra={
                "channel": publisher.channel,
                "sync_id": summary.sync_id,
                "error": str(e),
            },
        )
        return False

    finally:
        if owns_publisher:
            await publisher.close()
