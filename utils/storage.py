"""
Object Storage Utilities

Thin S3 wrapper used for the harvest cursors and the batch output files.
Callers depend on the ObjectStore protocol so tests can substitute an
in-memory store.
"""

import logging
from typing import Any, BinaryIO, Optional, Protocol

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class StorageError(IOError):
    """Raised when an object store call fails."""


class ObjectNotFoundError(StorageError):
    """Raised when the requested object does not exist."""


class ObjectStore(Protocol):
    """Named blob storage under buckets."""

    def get_bytes(self, bucket: str, key: str) -> bytes:
        """Return the object body; raise ObjectNotFoundError if absent."""
        ...

    def put_bytes(self, bucket: str, key: str, body: bytes, content_type: str) -> None:
        """Create or overwrite an object."""
        ...

    def upload_fileobj(self, bucket: str, key: str, fileobj: BinaryIO, content_type: str) -> None:
        """Stream a readable binary file object into an object; the caller keeps ownership of fileobj."""
        ...


def create_s3_client(region: str, endpoint_url: Optional[str] = None) -> Any:
    """
    Create a boto3 S3 client with standard retries.

    Args:
        region: AWS region name
        endpoint_url: Optional endpoint override (e.g. LocalStack)

    Returns:
        boto3 S3 client
    """
    session = boto3.Session(region_name=region)
    return session.client(
        "s3",
        region_name=region,
        endpoint_url=endpoint_url or None,
        config=BotoConfig(retries={"max_attempts": 5, "mode": "standard"}),
    )


def _is_not_found(err: Exception) -> bool:
    if isinstance(err, ClientError):
        code = err.response.get("Error", {}).get("Code", "")
        return code in _NOT_FOUND_CODES
    return False


class S3ObjectStore:
    """ObjectStore backed by Amazon S3."""

    def __init__(self, client: Any) -> None:
        """
        Initialize store.

        Args:
            client: boto3 S3 client
        """
        self._s3 = client

    def get_bytes(self, bucket: str, key: str) -> bytes:
        """
        Download an object body.

        Raises:
            ObjectNotFoundError: If the object does not exist
            StorageError: If the download fails for any other reason
        """
        try:
            resp = self._s3.get_object(Bucket=bucket, Key=key)
            return resp["Body"].read()
        except (ClientError, BotoCoreError) as e:
            if _is_not_found(e):
                raise ObjectNotFoundError(f"s3://{bucket}/{key} does not exist") from e
            raise StorageError(f"Failed to read s3://{bucket}/{key}: {e}") from e

    def put_bytes(self, bucket: str, key: str, body: bytes, content_type: str) -> None:
        """
        Upload an in-memory body, overwriting any existing object.

        Raises:
            StorageError: If the upload fails
        """
        try:
            self._s3.put_object(Bucket=bucket, Key=key, Body=body, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to write s3://{bucket}/{key}: {e}") from e

        logger.debug("Wrote s3://%s/%s (%d bytes)", bucket, key, len(body))

    def upload_fileobj(self, bucket: str, key: str, fileobj: BinaryIO, content_type: str) -> None:
        """
        Upload a file object through the S3 transfer manager.

        The transfer manager reads fileobj but does not close it.

        Raises:
            StorageError: If the upload fails
        """
        try:
            self._s3.upload_fileobj(
                fileobj,
                bucket,
                key,
                ExtraArgs={"ContentType": content_type},
            )
        except (S3UploadFailedError, ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to upload s3://{bucket}/{key}: {e}") from e
