"""
Harvest Scheduler - Cron and On-Demand Execution

Manages scheduled and manual harvest/retry runs using APScheduler.

Features:
- Cron-based scheduling (HARVEST_SCHEDULE_CRON, RETRY_SCHEDULE_CRON)
- RUN_ONCE mode for immediate execution (RUN_MODE=harvest|retry|all)
- Runs within one process never overlap
- Redis event publishing after each run
- Graceful shutdown handling

Usage:
    # Scheduled mode (default)
    python -m apps.harvester

    # Run the harvest once and exit
    RUN_ONCE=true RUN_MODE=harvest python -m apps.harvester
"""

import asyncio
import logging
import signal
import sys
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from apps.harvester.harvest_job import Harvester, RunSummary, build_harvester
from apps.harvester.publisher import publish_run_event
from utils.config import ConfigurationError, settings
from utils.logging import setup_logging

logger = logging.getLogger(__name__)

RUN_MODES = ("harvest", "retry", "all")


class HarvestScheduler:
    """
    Scheduler for periodic or on-demand harvest and retry runs.

    Handles:
    - APScheduler setup and management
    - Cron-based scheduling of both run modes
    - RUN_ONCE immediate execution
    - Signal handling for graceful shutdown
    """

    def __init__(self, harvester: Harvester, run_once: bool = False, run_mode: str = "all") -> None:
        """
        Initialize scheduler.

        Args:
            harvester: Wired harvester
            run_once: If True, run the selected mode(s) once and exit
            run_mode: Which runs to execute: harvest, retry or all

        Raises:
            ValueError: If run_mode is not recognised
        """
        if run_mode not in RUN_MODES:
            raise ValueError(f"RUN_MODE must be one of {', '.join(RUN_MODES)}, got {run_mode!r}")

        self.harvester = harvester
        self.run_once = run_once
        self.run_mode = run_mode
        self.scheduler: AsyncIOScheduler | None = None
        self.shutdown_event = asyncio.Event()
        self._run_lock = asyncio.Lock()

        logger.info(
            "HarvestScheduler initialized",
            extra={
                "run_once": run_once,
                "run_mode": run_mode,
                "harvest_schedule": settings.HARVEST_SCHEDULE_CRON,
                "retry_schedule": settings.RETRY_SCHEDULE_CRON,
            },
        )

    async def _execute(self, mode: str, job: Callable[[], RunSummary]) -> RunSummary:
        async with self._run_lock:
            logger.info("Starting %s run", mode)

            try:
                summary = await asyncio.to_thread(job)
            except Exception as e:
                logger.error(
                    "%s run failed",
                    mode.capitalize(),
                    extra={"error": str(e)},
                    exc_info=True,
                )
                raise

        logger.info(
            "%s run completed: records_written=%d, objects=%d, failed_objects=%d, marker=%s",
            mode.capitalize(),
            summary.records_written,
            len(summary.objects_written),
            len(summary.failed_objects),
            summary.marker or "<none>",
        )

        try:
            await publish_run_event(summary)
        except Exception as e:
            logger.warning("Run event was not published: %s", str(e))

        return summary

    async def execute_harvest(self) -> RunSummary:
        """Execute the incremental harvest run."""
        return await self._execute("harvest", self.harvester.run_harvest)

    async def execute_retry(self) -> RunSummary:
        """Execute the retry sweep."""
        return await self._execute("retry", self.harvester.run_retry)

    def _selected_jobs(self) -> list[tuple[str, Callable[[], Awaitable[RunSummary]], str]]:
        jobs = []
        if self.run_mode in ("harvest", "all"):
            jobs.append(("harvest_job", self.execute_harvest, settings.HARVEST_SCHEDULE_CRON))
        if self.run_mode in ("retry", "all"):
            jobs.append(("retry_job", self.execute_retry, settings.RETRY_SCHEDULE_CRON))
        return jobs

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
        In RUN_ONCE mode, executes the selected runs in order and exits.
        """
        self.setup_signal_handlers()

        if self.run_once:
            logger.info("Running in RUN_ONCE mode")
            for _, execute, _ in self._selected_jobs():
                await execute()
            return

        logger.info("Running in scheduled mode")

        self.scheduler = AsyncIOScheduler()

        for job_id, execute, cron in self._selected_jobs():
            self.scheduler.add_job(
                execute,
                trigger=CronTrigger.from_crontab(cron),
                id=job_id,
                name=job_id.replace("_", " ").title(),
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )

        self.scheduler.start()
        logger.info("Scheduler started")

        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            logger.info(
                "Scheduled job",
                extra={"job_id": job.id, "next_run": str(next_run) if next_run is not None else None},
            )
        logger.info("Waiting for jobs...")

        await self.shutdown_event.wait()

        logger.info("Shutting down scheduler")
        if self.scheduler:
            self.scheduler.shutdown(wait=True)
        logger.info("Scheduler shutdown complete")


async def main() -> None:
    """Main entry point for scheduler."""
    setup_logging(level=settings.LOG_LEVEL, format_type=settings.LOG_FORMAT)

    try:
        harvester = build_harvester(settings)
        scheduler = HarvestScheduler(
            harvester,
            run_once=settings.RUN_ONCE,
            run_mode=settings.RUN_MODE,
        )
    except (ConfigurationError, ValueError) as e:
        logger.error("Invalid configuration: %s", str(e))
        sys.exit(1)

    try:
        await scheduler.start()
    except Exception as e:
        logger.error("Scheduler failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)


def cli() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    asyncio.run(main())
