"""Split fetched executions into write-ready and retry-ready sets."""

from typing import Iterable

from utils.schemas import QueryExecutionRecord, QueryExecutionState

TERMINAL_STATES = frozenset({QueryExecutionState.SUCCEEDED, QueryExecutionState.CANCELLED})
NON_TERMINAL_STATES = frozenset({QueryExecutionState.QUEUED, QueryExecutionState.RUNNING})


def classify(
    records: Iterable[QueryExecutionRecord],
) -> tuple[list[QueryExecutionRecord], list[QueryExecutionRecord]]:
    """
    Partition records by status, preserving input order.

    FAILED executions land in neither list: they are not written and not retried.

    Returns:
        (terminal, non_terminal)
    """
    terminal: list[QueryExecutionRecord] = []
    non_terminal: list[QueryExecutionRecord] = []

    for record in records:
        if record.status in TERMINAL_STATES:
            terminal.append(record)
        elif record.status in NON_TERMINAL_STATES:
            non_terminal.append(record)

    return terminal, non_terminal
