"""
Unit tests for the harvest scheduler entrypoint.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from apps.harvester.harvest_job import Harvester, RunSummary
from apps.harvester.scheduler import HarvestScheduler
from utils.athena import ExecutionSourceError


@pytest.fixture
def harvester() -> MagicMock:
    harvester = MagicMock(spec=Harvester)
    harvester.run_harvest.return_value = RunSummary(mode="harvest", records_written=2, marker="e2")
    harvester.run_retry.return_value = RunSummary(mode="retry", retry_remaining=0)
    return harvester


@pytest.fixture(autouse=True)
def no_signal_handlers():
    with patch.object(HarvestScheduler, "setup_signal_handlers"):
        yield


@pytest.fixture
def publish():
    with patch("apps.harvester.scheduler.publish_run_event", new_callable=AsyncMock) as mock:
        yield mock


class TestRunOnce:
    """RUN_ONCE execution."""

    @pytest.mark.asyncio
    async def test_all_runs_harvest_then_retry(self, harvester, publish):
        scheduler = HarvestScheduler(harvester, run_once=True, run_mode="all")

        await scheduler.start()

        harvester.run_harvest.assert_called_once_with()
        harvester.run_retry.assert_called_once_with()
        assert [call.args[0].mode for call in publish.await_args_list] == ["harvest", "retry"]

    @pytest.mark.asyncio
    async def test_retry_only(self, harvester, publish):
        scheduler = HarvestScheduler(harvester, run_once=True, run_mode="retry")

        await scheduler.start()

        harvester.run_harvest.assert_not_called()
        harvester.run_retry.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_run_failure_propagates_and_skips_publish(self, harvester, publish):
        harvester.run_harvest.side_effect = ExecutionSourceError("ListQueryExecutions failed")
        scheduler = HarvestScheduler(harvester, run_once=True, run_mode="harvest")

        with pytest.raises(ExecutionSourceError):
            await scheduler.start()

        publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_run(self, harvester, publish):
        publish.side_effect = ConnectionError("redis unavailable")
        scheduler = HarvestScheduler(harvester, run_once=True, run_mode="harvest")

        summary = await scheduler.execute_harvest()

        assert summary.records_written == 2


class TestConfiguration:
    """Constructor validation."""

    def test_unknown_run_mode_rejected(self, harvester):
        with pytest.raises(ValueError):
            HarvestScheduler(harvester, run_mode="everything")
