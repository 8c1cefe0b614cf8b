"""
Athena Query Execution Source

Lists query execution ids (newest first) and fetches execution details in
batches of at most MAX_BATCH_SIZE ids, the per-call ceiling imposed by
BatchGetQueryExecution.

No retries happen here: a failed call or malformed response raises
ExecutionSourceError and the caller aborts the run.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Protocol, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from utils.schemas import QueryExecutionRecord

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 50


class ExecutionSourceError(IOError):
    """Raised when the query service returns an error or an unusable response."""


@dataclass(frozen=True)
class ExecutionPage:
    """One page of execution ids, newest first."""

    ids: list[str] = field(default_factory=list)
    next_token: Optional[str] = None


class ExecutionSource(Protocol):
    """Paginated listing and batch detail fetch of query executions."""

    def list_page(self, continuation_token: Optional[str] = None) -> ExecutionPage:
        ...

    def fetch_details(self, ids: Sequence[str]) -> list[QueryExecutionRecord]:
        ...


def chunk_ids(ids: Sequence[str], size: int = MAX_BATCH_SIZE) -> Iterator[list[str]]:
    """
    Split ids into contiguous chunks of ``size``; the last chunk holds the remainder.

    An empty sequence yields nothing, and exactly ``size`` ids yield one chunk.

    Raises:
        ValueError: If size is not positive
    """
    if size <= 0:
        raise ValueError(f"Chunk size must be greater than 0, got {size}")

    for start in range(0, len(ids), size):
        yield list(ids[start:start + size])


def create_athena_client(region: str, endpoint_url: Optional[str] = None) -> Any:
    """Create a boto3 Athena client."""
    session = boto3.Session(region_name=region)
    return session.client("athena", region_name=region, endpoint_url=endpoint_url or None)


class AthenaExecutionSource:
    """ExecutionSource backed by the Athena API."""

    def __init__(self, client: Any, work_group: str = "") -> None:
        """
        Initialize source.

        Args:
            client: boto3 Athena client
            work_group: Work group to list; empty uses the service default
        """
        self._athena = client
        self.work_group = work_group

    @staticmethod
    def _check_status(response: Any, operation: str) -> None:
        if not isinstance(response, dict):
            raise ExecutionSourceError(f"{operation} returned no response")

        status_code = response.get("ResponseMetadata", {}).get("HTTPStatusCode", 200)
        if status_code != 200:
            raise ExecutionSourceError(
                f"{operation} did not return a success status code: {status_code}"
            )

    def list_page(self, continuation_token: Optional[str] = None) -> ExecutionPage:
        """
        List one page of execution ids.

        Args:
            continuation_token: Token returned by the previous page, None for the first page

        Returns:
            ExecutionPage with ids newest first and the next token, if any

        Raises:
            ExecutionSourceError: On a failed call or a response without ids
        """
        kwargs: dict[str, Any] = {"MaxResults": MAX_BATCH_SIZE}
        if continuation_token:
            kwargs["NextToken"] = continuation_token
        if self.work_group:
            kwargs["WorkGroup"] = self.work_group

        try:
            response = self._athena.list_query_executions(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise ExecutionSourceError(f"ListQueryExecutions failed: {e}") from e

        self._check_status(response, "ListQueryExecutions")

        if "QueryExecutionIds" not in response:
            raise ExecutionSourceError("ListQueryExecutions response is missing QueryExecutionIds")

        return ExecutionPage(
            ids=list(response["QueryExecutionIds"]),
            next_token=response.get("NextToken") or None,
        )

    def fetch_details(self, ids: Sequence[str]) -> list[QueryExecutionRecord]:
        """
        Fetch execution details for up to MAX_BATCH_SIZE ids.

        Executions that do not form a valid record are logged and skipped.

        Args:
            ids: Execution ids

        Returns:
            Records in response order

        Raises:
            ValueError: If more than MAX_BATCH_SIZE ids are given
            ExecutionSourceError: On a failed call or a response without executions
        """
        if len(ids) > MAX_BATCH_SIZE:
            raise ValueError(f"At most {MAX_BATCH_SIZE} ids per batch, got {len(ids)}")

        if not ids:
            return []

        try:
            response = self._athena.batch_get_query_execution(QueryExecutionIds=list(ids))
        except (ClientError, BotoCoreError) as e:
            raise ExecutionSourceError(f"BatchGetQueryExecution failed: {e}") from e

        self._check_status(response, "BatchGetQueryExecution")

        if "QueryExecutions" not in response:
            raise ExecutionSourceError("BatchGetQueryExecution response is missing QueryExecutions")

        unprocessed = response.get("UnprocessedQueryExecutionIds") or []
        if unprocessed:
            logger.warning(
                "Query service left %d ids unprocessed",
                len(unprocessed),
                extra={"unprocessed": [item.get("QueryExecutionId") for item in unprocessed]},
            )

        records: list[QueryExecutionRecord] = []
        for execution in response["QueryExecutions"]:
            try:
                records.append(QueryExecutionRecord.from_athena(execution))
            except ValidationError as e:
                logger.warning(
                    "Skipping malformed query execution: id=%s, error=%s",
                    execution.get("QueryExecutionId"),
                    str(e).split("\n")[0],
                )

        if not records:
            logger.error("The batch response did not contain any usable query executions")

        return records
