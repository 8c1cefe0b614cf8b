"""
Global pytest configuration and fixtures.

This module provides:
- In-memory object store and query service fakes
- A harvester wired against those fakes
"""

import pytest

from apps.harvester.cursors import CursorStore
from apps.harvester.harvest_job import Harvester
from apps.harvester.writer import BatchWriter
from tests.fakes import FakeExecutionSource, FakeObjectStore

MARKER_BUCKET = "cursor-bucket"
MARKER_KEY = "athena/marker"
RETRY_BUCKET = "cursor-bucket"
RETRY_KEY = "athena/retry"
RESULT_BUCKET = "metrics-bucket"


@pytest.fixture
def store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def cursors(store: FakeObjectStore) -> CursorStore:
    return CursorStore(
        store,
        marker_bucket=MARKER_BUCKET,
        marker_key=MARKER_KEY,
        retry_bucket=RETRY_BUCKET,
        retry_key=RETRY_KEY,
    )


@pytest.fixture
def writer(store: FakeObjectStore) -> BatchWriter:
    return BatchWriter(store, RESULT_BUCKET)


@pytest.fixture
def source() -> FakeExecutionSource:
    return FakeExecutionSource()


@pytest.fixture
def harvester(source: FakeExecutionSource, cursors: CursorStore, writer: BatchWriter) -> Harvester:
    return Harvester(source=source, cursors=cursors, writer=writer)
