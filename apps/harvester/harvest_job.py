"""
Harvest Job - Incremental and Retry Runs

Main run:
    read marker -> list pages newest first -> fetch details in chunks ->
    classify -> merge in-flight and unanswered ids into the retry queue ->
    write terminal records -> stop at the marker or the last page ->
    advance marker

The candidate marker is the first id of the first page. It is only
committed after every page has been handled, so an aborted run leaves the
old marker in place and the next run covers the same window again. That is
safe because batch objects and retry merges are keyed by execution id.

Retry run:
    read retry queue -> fetch details in chunks -> write terminal records ->
    replace the queue with the ids still in flight or unanswered (only if it
    shrank)
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from apps.harvester.classifier import classify
from apps.harvester.cursors import CursorStore
from apps.harvester.writer import BatchWriter, WriteResult
from utils.athena import (
    MAX_BATCH_SIZE,
    AthenaExecutionSource,
    ExecutionSource,
    chunk_ids,
    create_athena_client,
)
from utils.config import Settings
from utils.schemas import QueryExecutionRecord, QueryExecutionState
from utils.storage import S3ObjectStore, create_s3_client

logger = logging.getLogger(__name__)

REQUIRED_SETTINGS = ("MARKER_BUCKET", "MARKER_KEY", "RETRY_BUCKET", "RETRY_KEY", "RESULT_BUCKET")


@dataclass
class RunSummary:
    """Outcome of a harvest or retry run."""

    mode: str
    records_written: int = 0
    objects_written: list[str] = field(default_factory=list)
    failed_objects: list[str] = field(default_factory=list)
    marker: str = ""
    marker_advanced: bool = False
    retry_remaining: Optional[int] = None

    def add_write(self, result: WriteResult) -> None:
        self.records_written += result.records_written
        self.objects_written.extend(result.objects_written)
        self.failed_objects.extend(result.failed_keys)


class Harvester:
    """Runs the harvest and retry sweeps against injected collaborators."""

    def __init__(
        self,
        source: ExecutionSource,
        cursors: CursorStore,
        writer: BatchWriter,
        batch_size: int = MAX_BATCH_SIZE,
    ) -> None:
        self.source = source
        self.cursors = cursors
        self.writer = writer
        self.batch_size = batch_size

    def _fetch_and_classify(
        self, ids: list[str]
    ) -> tuple[list[QueryExecutionRecord], list[str]]:
        """
        Fetch ids chunk by chunk and classify each chunk as it arrives.

        Returns:
            Terminal records, and the ids to retry later: executions still in
            flight plus ids the service returned no usable record for
        """
        terminal: list[QueryExecutionRecord] = []
        pending: list[str] = []

        for chunk in chunk_ids(ids, self.batch_size):
            chunk_terminal, chunk_pending = self._classify_chunk(chunk)
            terminal.extend(chunk_terminal)
            pending.extend(chunk_pending)

        return terminal, pending

    def _classify_chunk(self, chunk: list[str]) -> tuple[list[QueryExecutionRecord], list[str]]:
        records = self.source.fetch_details(chunk)
        terminal, non_terminal = classify(records)

        dropped = sum(1 for record in records if record.status == QueryExecutionState.FAILED)
        if dropped:
            logger.info("Dropping %d failed query executions", dropped)

        answered = {record.id for record in records}
        unanswered = [execution_id for execution_id in chunk if execution_id not in answered]
        if unanswered:
            logger.warning(
                "No usable record returned for %d query execution ids, keeping them for retry",
                len(unanswered),
                extra={"ids": unanswered},
            )

        # Keep the order the ids were asked for
        pending_ids = {record.id for record in non_terminal}.union(unanswered)
        pending = [execution_id for execution_id in chunk if execution_id in pending_ids]

        return terminal, pending

    def run_harvest(self) -> RunSummary:
        """
        Harvest executions newer than the stored marker.

        Returns:
            RunSummary for the run

        Raises:
            ExecutionSourceError: If the query service fails; the marker is left unchanged
        """
        previous_marker = self.cursors.read_marker()
        summary = RunSummary(mode="harvest", marker=previous_marker)

        logger.info("Previous run last processed query execution id: %s", previous_marker or "<none>")

        new_marker = ""
        token: Optional[str] = None
        first_page = True

        while True:
            page = self.source.list_page(token)

            if not page.ids:
                logger.warning("The list response contained no query execution ids")
                break

            ids = page.ids

            if first_page:
                first_page = False
                new_marker = ids[0]
                logger.info("The new last processed query execution id will be: %s", new_marker)

                if new_marker == previous_marker:
                    logger.info("No new query execution ids")
                    return summary

            # Reached the previous run's starting point: keep only newer ids
            reached_marker = bool(previous_marker) and previous_marker in ids
            if reached_marker:
                ids = ids[:ids.index(previous_marker)]

            if ids:
                terminal, pending = self._fetch_and_classify(ids)

                if pending:
                    self.cursors.merge_retry_ids(pending)

                if terminal:
                    summary.add_write(self.writer.write(terminal))
                else:
                    logger.info("No finished queries found in this page")

            if reached_marker or not page.next_token:
                break

            token = page.next_token

        logger.info(
            "Finished pulling query execution data. Wrote %d records.",
            summary.records_written,
            extra={"objects": len(summary.objects_written), "failed_objects": len(summary.failed_objects)},
        )

        if new_marker and new_marker != previous_marker:
            self.cursors.write_marker(new_marker)
            summary.marker = new_marker
            summary.marker_advanced = True
            logger.info("Completed updating marker to %s", new_marker)
        else:
            logger.info("No new query executions, not updating marker")

        return summary

    def run_retry(self) -> RunSummary:
        """
        Re-fetch executions in the retry queue and write those that have finished.

        Returns:
            RunSummary for the run

        Raises:
            ExecutionSourceError: If the query service fails; the retry queue is left unchanged
        """
        retry_ids = self.cursors.read_retry_ids()
        summary = RunSummary(mode="retry", retry_remaining=len(retry_ids))

        if not retry_ids:
            logger.info("No ids in the retry file")
            return summary

        logger.info("Retrying %d query execution ids", len(retry_ids))

        remaining: list[str] = []

        for chunk in chunk_ids(retry_ids, self.batch_size):
            terminal, pending = self._classify_chunk(chunk)
            remaining.extend(pending)

            if terminal:
                summary.add_write(self.writer.write(terminal))
            else:
                logger.info("No finished queries found in this chunk")

        logger.info("Finished retrying query executions. Wrote %d records.", summary.records_written)

        if len(remaining) < len(retry_ids):
            self.cursors.replace_retry_ids(remaining)
            summary.retry_remaining = len(remaining)
        else:
            logger.info("No updates need to be made to the retry file")

        return summary


def build_harvester(settings: Settings) -> Harvester:
    """
    Wire a Harvester against AWS from settings.

    Raises:
        ConfigurationError: If a cursor or result location is not configured
    """
    settings.require(*REQUIRED_SETTINGS)

    endpoint_url = settings.AWS_ENDPOINT_URL or None
    store = S3ObjectStore(create_s3_client(settings.AWS_REGION, endpoint_url))

    return Harvester(
        source=AthenaExecutionSource(
            create_athena_client(settings.AWS_REGION, endpoint_url),
            work_group=settings.ATHENA_WORK_GROUP,
        ),
        cursors=CursorStore(
            store,
            marker_bucket=settings.MARKER_BUCKET,
            marker_key=settings.MARKER_KEY,
            retry_bucket=settings.RETRY_BUCKET,
            retry_key=settings.RETRY_KEY,
        ),
        writer=BatchWriter(store, settings.RESULT_BUCKET),
    )
