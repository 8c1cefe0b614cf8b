"""
Harvest Cursors - Marker and Retry Queue Persistence

Two independent slots stored as plain text objects:
- marker: the newest execution id a completed harvest run has processed
- retry queue: newline-delimited ids that were still queued or running

There is no locking; only one run may use the cursors at a time.
"""

import logging
from typing import Iterable

from utils.storage import ObjectNotFoundError, ObjectStore, StorageError

logger = logging.getLogger(__name__)

TEXT_CONTENT_TYPE = "text/plain"


def _dedupe(ids: Iterable[str]) -> list[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for execution_id in ids:
        execution_id = execution_id.strip()
        if execution_id:
            seen.setdefault(execution_id, None)
    return list(seen)


class CursorStore:
    """Reads and writes the harvest cursors in an object store."""

    def __init__(
        self,
        store: ObjectStore,
        marker_bucket: str,
        marker_key: str,
        retry_bucket: str,
        retry_key: str,
    ) -> None:
        self.store = store
        self.marker_bucket = marker_bucket
        self.marker_key = marker_key
        self.retry_bucket = retry_bucket
        self.retry_key = retry_key

    def read_marker(self) -> str:
        """
        Read the last processed execution id.

        Returns:
            The marker, or an empty string if none has been written yet

        Raises:
            StorageError: If the marker exists but cannot be read
        """
        try:
            body = self.store.get_bytes(self.marker_bucket, self.marker_key)
        except ObjectNotFoundError:
            logger.info("No marker found at s3://%s/%s", self.marker_bucket, self.marker_key)
            return ""

        return body.decode("utf-8").strip()

    def write_marker(self, execution_id: str) -> None:
        """Overwrite the marker."""
        self.store.put_bytes(
            self.marker_bucket,
            self.marker_key,
            execution_id.encode("utf-8"),
            TEXT_CONTENT_TYPE,
        )
        logger.info("Marker updated", extra={"marker": execution_id})

    def read_retry_ids(self) -> list[str]:
        """
        Read the retry queue.

        A missing retry file is the normal steady state. Any other read failure
        is logged and also treated as an empty queue.

        Returns:
            De-duplicated ids in stored order
        """
        try:
            body = self.store.get_bytes(self.retry_bucket, self.retry_key)
        except ObjectNotFoundError:
            logger.debug("No retry file at s3://%s/%s", self.retry_bucket, self.retry_key)
            return []
        except StorageError as e:
            logger.error(
                "Failed to read retry file, treating it as empty",
                extra={"bucket": self.retry_bucket, "key": self.retry_key, "error": str(e)},
            )
            return []

        return _dedupe(body.decode("utf-8").split("\n"))

    def _write_retry_ids(self, ids: list[str]) -> None:
        self.store.put_bytes(
            self.retry_bucket,
            self.retry_key,
            "\n".join(ids).encode("utf-8"),
            TEXT_CONTENT_TYPE,
        )

    def merge_retry_ids(self, new_ids: Iterable[str]) -> None:
        """
        Union new ids into the stored retry queue and rewrite it.

        Stored ids keep their order and new ids are appended in encounter order,
        so merging the same ids twice stores the same content. An empty
        ``new_ids`` writes nothing.
        """
        new_ids = _dedupe(new_ids)
        if not new_ids:
            return

        merged = _dedupe([*self.read_retry_ids(), *new_ids])
        self._write_retry_ids(merged)

        logger.info("Retry file updated: added=%d, total=%d", len(new_ids), len(merged))

    def replace_retry_ids(self, ids: Iterable[str]) -> None:
        """Overwrite the retry queue with exactly these ids."""
        remaining = _dedupe(ids)
        self._write_retry_ids(remaining)
        logger.info("Retry file replaced: total=%d", len(remaining))
