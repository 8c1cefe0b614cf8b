"""
Event Publisher for Harvester Service

Publishes a run notification to Redis Pub/Sub after each harvest or retry run.

Features:
- Redis Pub/Sub integration via production wrapper
- Automatic connection management and retries
- JSON message serialization
- Disabled when REDIS_URL is empty

Usage:
    from apps.harvester.publisher import publish_run_event

    await publish_run_event(summary)
"""

import logging
from typing import Optional

from apps.harvester.harvest_job import RunSummary
from utils.config import settings
from utils.mq import RedisPublisher
from utils.schemas import RunEvent

logger = logging.getLogger(__name__)


def build_run_event(summary: RunSummary) -> RunEvent:
    """Translate a run summary into its notification payload."""
    return RunEvent(
        type=f"{summary.mode}_completed",
        records_written=summary.records_written,
        objects_written=len(summary.objects_written),
        failed_objects=len(summary.failed_objects),
        marker=summary.marker,
        marker_advanced=summary.marker_advanced,
        retry_remaining=summary.retry_remaining,
    )


async def publish_run_event(summary: RunSummary, publisher: Optional[RedisPublisher] = None) -> bool:
    """
    Publish a run completion event to the runs channel.

    Args:
        summary: Result of the run
        publisher: Publisher to use; a new one is created and closed when omitted

    Returns:
        True if an event was published, False if notifications are disabled

    Raises:
        redis.RedisError: If publishing fails
    """
    if publisher is None and not settings.REDIS_URL:
        logger.debug("REDIS_URL not set, skipping run event")
        return False

    owns_publisher = publisher is None
    publisher = publisher or RedisPublisher()
    event = build_run_event(summary)

    try:
        await publisher.publish(settings.REDIS_CHANNEL_RUNS, event.model_dump(mode="json"))

        logger.info(
            "Published run event",
            extra={
                "channel": settings.REDIS_CHANNEL_RUNS,
                "message_type": event.type,
                "records_written": event.records_written,
            },
        )
        return True

    except Exception as e:
        logger.error(
            "Failed to publish event",
            extra={
                "channel": settings.REDIS_CHANNEL_RUNS,
                "message_type": event.type,
                "error": str(e),
            },
        )
        raise

    finally:
        if owns_publisher:
            await publisher.close()
