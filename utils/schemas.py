"""
Pydantic Schemas - Data Validation Models

Defines the Pydantic schemas used throughout the harvest:
- Query execution metric records (one row per Athena query execution)
- CSV column layout for batch files
- Redis Pub/Sub run notifications

Usage:
    from utils.schemas import QueryExecutionRecord

    record = QueryExecutionRecord.from_athena(query_execution)
    record.billing_period  # "2024-03-01"
"""

import base64
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Batch file column order; the header row uses these names verbatim
CSV_COLUMNS = (
    "QueryExecutionId",
    "Database",
    "StatementType",
    "DataScannedInBytes",
    "EngineExecutionTimeInMillis",
    "SubmissionDate",
    "CompletionDate",
    "Status",
    "OutputLocation",
    "EncryptionConfiguration",
    "KmsKey",
    "Query",
    "BillingPeriod",
)


class StatementType(str, Enum):
    """Type of SQL statement reported by Athena."""

    DDL = "DDL"
    DML = "DML"
    UTILITY = "UTILITY"


class QueryExecutionState(str, Enum):
    """Lifecycle state of a query execution."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


def format_timestamp(value: Optional[datetime]) -> str:
    """Format a UTC timestamp with millisecond precision, empty string for None."""
    if value is None:
        return ""
    return f"{value.strftime(TIMESTAMP_FORMAT)}.{value.microsecond // 1000:03d}"


def parse_timestamp(value: str) -> Optional[datetime]:
    """Inverse of format_timestamp()."""
    if not value:
        return None
    return datetime.strptime(value, f"{TIMESTAMP_FORMAT}.%f").replace(tzinfo=timezone.utc)


class Encryption(BaseModel):
    """Result encryption settings; both fields are empty strings when unset."""

    model_config = ConfigDict(frozen=True)

    scheme: str = Field(default="", description="Encryption option, e.g. SSE_KMS")
    key_ref: str = Field(default="", description="KMS key ARN or id")

    @field_validator("scheme", "key_ref", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class QueryExecutionRecord(BaseModel):
    """Flattened metric for a single query execution.

    Validates:
    - id, database, query_text, output_location: non-empty strings
    - bytes_scanned, engine_execution_millis: non-negative integers
    - timestamps: normalised to UTC (naive values are taken as UTC) and
      truncated to whole milliseconds, the precision of the batch format

    query_text holds the base64 encoding of the UTF-8 query body.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Query execution id")
    database: str = Field(..., min_length=1, description="Database the query ran against")
    statement_type: StatementType = Field(..., description="Type of SQL statement")
    bytes_scanned: int = Field(default=0, ge=0, description="Data scanned in bytes")
    engine_execution_millis: int = Field(default=0, ge=0, description="Engine execution time")
    submitted_at: datetime = Field(..., description="Submission time (UTC)")
    completed_at: Optional[datetime] = Field(default=None, description="Completion time (UTC)")
    status: QueryExecutionState = Field(..., description="Execution state")
    output_location: str = Field(..., min_length=1, description="S3 location of query results")
    encryption: Encryption = Field(default_factory=Encryption)
    query_text: str = Field(..., min_length=1, description="Base64 encoded query")

    @field_validator("submitted_at", "completed_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        v = v.replace(microsecond=v.microsecond // 1000 * 1000)
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def billing_period(self) -> str:
        """Submission month as YYYY-MM-01; used only as the write partition key."""
        return self.submitted_at.strftime("%Y-%m-01")

    @classmethod
    def from_athena(cls, execution: dict[str, Any]) -> "QueryExecutionRecord":
        """Build a record from a boto3 ``QueryExecution`` payload.

        Raises:
            pydantic.ValidationError: If the execution does not form a valid record
        """
        statistics = execution.get("Statistics") or {}
        status = execution.get("Status") or {}
        context = execution.get("QueryExecutionContext") or {}
        result_config = execution.get("ResultConfiguration") or {}
        encryption = result_config.get("EncryptionConfiguration") or {}
        query = execution.get("Query") or ""

        return cls(
            id=execution.get("QueryExecutionId") or "",
            database=context.get("Database") or "",
            statement_type=execution.get("StatementType"),
            bytes_scanned=statistics.get("DataScannedInBytes", 0),
            engine_execution_millis=statistics.get("EngineExecutionTimeInMillis", 0),
            submitted_at=status.get("SubmissionDateTime"),
            completed_at=status.get("CompletionDateTime"),
            status=status.get("State"),
            output_location=result_config.get("OutputLocation") or "",
            encryption=Encryption(
                scheme=encryption.get("EncryptionOption"),
                key_ref=encryption.get("KmsKey"),
            ),
            query_text=base64.b64encode(query.encode("utf-8")).decode("ascii") if query else "",
        )

    def to_csv_row(self) -> list[str]:
        """Render the record in CSV_COLUMNS order."""
        return [
            self.id,
            self.database,
            self.statement_type.value,
            str(self.bytes_scanned),
            str(self.engine_execution_millis),
            format_timestamp(self.submitted_at),
            format_timestamp(self.completed_at),
            self.status.value,
            self.output_location,
            self.encryption.scheme,
            self.encryption.key_ref,
            self.query_text,
            self.billing_period,
        ]

    @classmethod
    def from_csv_row(cls, row: dict[str, str]) -> "QueryExecutionRecord":
        """Rebuild a record from a CSV row keyed by CSV_COLUMNS.

        BillingPeriod is derived, so the stored column is ignored.
        """
        return cls(
            id=row["QueryExecutionId"],
            database=row["Database"],
            statement_type=row["StatementType"],
            bytes_scanned=int(row["DataScannedInBytes"]),
            engine_execution_millis=int(row["EngineExecutionTimeInMillis"]),
            submitted_at=parse_timestamp(row["SubmissionDate"]),
            completed_at=parse_timestamp(row["CompletionDate"]),
            status=row["Status"],
            output_location=row["OutputLocation"],
            encryption=Encryption(scheme=row["EncryptionConfiguration"], key_ref=row["KmsKey"]),
            query_text=row["Query"],
        )


class RunEvent(BaseModel):
    """Redis Pub/Sub notification published after each run.

    Standard format:
    {
        "type": "harvest_completed" | "retry_completed",
        "records_written": 42,
        "objects_written": 2,
        "failed_objects": 0,
        "marker": "b0c1...",
        "marker_advanced": true,
        "retry_remaining": 3,
        "ts": "2025-01-15T03:15:02Z"
    }
    """

    type: str = Field(..., description="Event type")
    records_written: int = Field(default=0, ge=0)
    objects_written: int = Field(default=0, ge=0)
    failed_objects: int = Field(default=0, ge=0)
    marker: str = Field(default="", description="Marker after the run")
    marker_advanced: bool = Field(default=False)
    retry_remaining: Optional[int] = Field(default=None, description="Retry ids left after the run")
    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Timestamp")
