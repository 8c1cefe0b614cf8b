"""
Unit tests for the S3 object store wrapper.
"""

import io
from unittest.mock import MagicMock

import pytest
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError

from utils.storage import ObjectNotFoundError, S3ObjectStore, StorageError


def _client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestGetBytes:
    """Object download."""

    def test_returns_body(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": io.BytesIO(b"exec-001")}

        assert S3ObjectStore(client).get_bytes("bucket", "marker") == b"exec-001"
        client.get_object.assert_called_once_with(Bucket="bucket", Key="marker")

    @pytest.mark.parametrize("code", ["NoSuchKey", "404", "NotFound"])
    def test_missing_object(self, code):
        client = MagicMock()
        client.get_object.side_effect = _client_error(code)

        with pytest.raises(ObjectNotFoundError):
            S3ObjectStore(client).get_bytes("bucket", "marker")

    def test_other_errors_are_not_not_found(self):
        client = MagicMock()
        client.get_object.side_effect = _client_error("AccessDenied")

        with pytest.raises(StorageError) as exc_info:
            S3ObjectStore(client).get_bytes("bucket", "marker")

        assert not isinstance(exc_info.value, ObjectNotFoundError)


class TestPut:
    """Object upload."""

    def test_put_bytes(self):
        client = MagicMock()

        S3ObjectStore(client).put_bytes("bucket", "retry", b"a\nb", "text/plain")

        client.put_object.assert_called_once_with(
            Bucket="bucket", Key="retry", Body=b"a\nb", ContentType="text/plain"
        )

    def test_put_bytes_failure_wrapped(self):
        client = MagicMock()
        client.put_object.side_effect = _client_error("AccessDenied", "PutObject")

        with pytest.raises(StorageError):
            S3ObjectStore(client).put_bytes("bucket", "retry", b"", "text/plain")

    def test_upload_fileobj_leaves_file_open(self):
        client = MagicMock()
        fileobj = io.BytesIO(b"payload")

        S3ObjectStore(client).upload_fileobj("bucket", "data/x.csv.gz", fileobj, "text/csv")

        client.upload_fileobj.assert_called_once_with(
            fileobj, "bucket", "data/x.csv.gz", ExtraArgs={"ContentType": "text/csv"}
        )
        assert not fileobj.closed

    def test_upload_failure_wrapped(self):
        client = MagicMock()
        client.upload_fileobj.side_effect = S3UploadFailedError("Failed to upload")

        with pytest.raises(StorageError):
            S3ObjectStore(client).upload_fileobj("bucket", "k", io.BytesIO(b""), "text/csv")
