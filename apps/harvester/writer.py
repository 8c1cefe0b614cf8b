"""
Batch Writer - Gzipped CSV Output per Billing Period

Groups terminal execution records by billing period and uploads one
gzipped CSV object per group:

    data/billingperiod=<YYYY-MM-01>/<firstId>_<lastId>.csv.gz

firstId/lastId are the first and last records of the group in encounter
order, so the name records provenance rather than sort order.

Each group is written in two phases that never overlap:
1. compress into an in-memory buffer and close the gzip stream, which
   writes the gzip footer into the buffer
2. rewind the buffer and upload it; the buffer stays open until the
   upload call has returned

A failed upload is logged and the remaining groups are still written.
"""

import csv
import gzip
import io
import logging
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, Sequence

from utils.schemas import CSV_COLUMNS, QueryExecutionRecord
from utils.storage import ObjectStore

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPE = "text/csv"
BATCH_FORMAT = "csv"


@dataclass
class WriteResult:
    """Outcome of one BatchWriter.write() call."""

    records_written: int = 0
    objects_written: list[str] = field(default_factory=list)
    failed_keys: list[str] = field(default_factory=list)


def group_by_billing_period(
    records: Iterable[QueryExecutionRecord],
) -> dict[str, list[QueryExecutionRecord]]:
    """Group records by billing period in order of first appearance."""
    groups: dict[str, list[QueryExecutionRecord]] = {}
    for record in records:
        groups.setdefault(record.billing_period, []).append(record)
    return groups


def batch_key(billing_period: str, records: Sequence[QueryExecutionRecord]) -> str:
    """Object key for one billing period group."""
    return (
        f"data/billingperiod={billing_period}/"
        f"{records[0].id}_{records[-1].id}.{BATCH_FORMAT}.gz"
    )


def encode_batch(records: Iterable[QueryExecutionRecord], buffer: BinaryIO) -> None:
    """
    Write records as gzipped CSV (header first) into buffer.

    The gzip stream is closed before returning so the footer is in buffer;
    buffer itself is left open. mtime is pinned so identical input gives
    identical bytes.
    """
    with gzip.GzipFile(fileobj=buffer, mode="wb", mtime=0) as gz, \
            io.TextIOWrapper(gz, encoding="utf-8", newline="") as text:
        writer = csv.writer(text)
        writer.writerow(CSV_COLUMNS)
        for record in records:
            writer.writerow(record.to_csv_row())


def decode_batch(body: bytes) -> list[QueryExecutionRecord]:
    """
    Read a batch object produced by encode_batch().

    Raises:
        ValueError: If the header does not match CSV_COLUMNS
        pydantic.ValidationError: If a row is not a valid record
    """
    with gzip.GzipFile(fileobj=io.BytesIO(body), mode="rb") as gz, \
            io.TextIOWrapper(gz, encoding="utf-8", newline="") as text:
        reader = csv.DictReader(text)
        if tuple(reader.fieldnames or ()) != CSV_COLUMNS:
            raise ValueError(f"Unexpected batch header: {reader.fieldnames}")
        return [QueryExecutionRecord.from_csv_row(row) for row in reader]


class BatchWriter:
    """Uploads terminal records to the result bucket."""

    def __init__(self, store: ObjectStore, bucket: str) -> None:
        self.store = store
        self.bucket = bucket

    def write(self, records: Sequence[QueryExecutionRecord]) -> WriteResult:
        """
        Write records, one object per billing period.

        Args:
            records: Terminal records for one page or chunk

        Returns:
            WriteResult listing uploaded and failed object keys
        """
        result = WriteResult()

        for billing_period, group in group_by_billing_period(records).items():
            key = batch_key(billing_period, group)

            try:
                with io.BytesIO() as buffer:
                    encode_batch(group, buffer)
                    size = buffer.tell()
                    buffer.seek(0)

                    logger.info("Starting upload of %d bytes: %s", size, key)
                    self.store.upload_fileobj(self.bucket, key, buffer, CSV_CONTENT_TYPE)

            except Exception as e:
                logger.error(
                    "Failed to write batch object",
                    extra={
                        "bucket": self.bucket,
                        "key": key,
                        "records": len(group),
                        "error": str(e),
                    },
                    exc_info=True,
                )
                result.failed_keys.append(key)
                continue

            logger.info("Finished upload of %s (%d records)", key, len(group))
            result.records_written += len(group)
            result.objects_written.append(key)

        return result
