"""
Unit tests for run notifications over Redis Pub/Sub.
"""

from unittest.mock import AsyncMock, patch

import pytest
import redis.asyncio as redis

from apps.harvester.harvest_job import RunSummary
from apps.harvester.publisher import build_run_event, publish_run_event
from utils.config import settings
from utils.mq import RedisPublisher


def _summary() -> RunSummary:
    return RunSummary(
        mode="harvest",
        records_written=5,
        objects_written=["data/billingperiod=2024-03-01/e5_e1.csv.gz"],
        failed_objects=[],
        marker="e5",
        marker_advanced=True,
    )


class TestBuildRunEvent:
    """Summary to payload translation."""

    def test_counts_and_type(self):
        event = build_run_event(_summary())

        assert event.type == "harvest_completed"
        assert event.records_written == 5
        assert event.objects_written == 1
        assert event.failed_objects == 0
        assert event.marker == "e5"
        assert event.marker_advanced is True

    def test_retry_summary(self):
        event = build_run_event(RunSummary(mode="retry", retry_remaining=2))
        assert event.type == "retry_completed"
        assert event.retry_remaining == 2


class TestPublishRunEvent:
    """Publishing through RedisPublisher."""

    @pytest.mark.asyncio
    async def test_publishes_to_runs_channel(self):
        publisher = AsyncMock(spec=RedisPublisher)

        assert await publish_run_event(_summary(), publisher=publisher) is True

        channel, message = publisher.publish.await_args.args
        assert channel == settings.REDIS_CHANNEL_RUNS
        assert message["type"] == "harvest_completed"
        assert message["records_written"] == 5
        publisher.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disabled_without_redis_url(self):
        with patch.object(settings, "REDIS_URL", ""), \
                patch("apps.harvester.publisher.RedisPublisher") as publisher_cls:
            assert await publish_run_event(_summary()) is False

        publisher_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_owned_publisher_closed(self):
        publisher = AsyncMock(spec=RedisPublisher)

        with patch.object(settings, "REDIS_URL", "redis://localhost:6379/0"), \
                patch("apps.harvester.publisher.RedisPublisher", return_value=publisher):
            assert await publish_run_event(_summary()) is True

        publisher.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_propagates(self):
        publisher = AsyncMock(spec=RedisPublisher)
        publisher.publish.side_effect = redis.ConnectionError("connection refused")

        with pytest.raises(redis.ConnectionError):
            await publish_run_event(_summary(), publisher=publisher)


class TestRedisPublisher:
    """Wrapper serialization."""

    @pytest.mark.asyncio
    async def test_publish_serializes_with_orjson(self):
        publisher = RedisPublisher(redis_url="redis://localhost:6379/0")
        publisher.client = AsyncMock()
        publisher.client.publish.return_value = 1

        assert await publisher.publish("harvest.runs", {"type": "harvest_completed"}) == 1

        publisher.client.publish.assert_awaited_once_with("harvest.runs", b'{"type":"harvest_completed"}')

    @pytest.mark.asyncio
    async def test_close_releases_client(self):
        publisher = RedisPublisher(redis_url="redis://localhost:6379/0")
        client = AsyncMock()
        publisher.client = client

        await publisher.close()

        client.aclose.assert_awaited_once()
        assert publisher.client is None
