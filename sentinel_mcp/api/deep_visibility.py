"""
Deep Visibility search job types.

A Deep Visibility query runs server-side as a long-running job. This module
defines the request, the job status snapshot, the retry policies applied at
each lifecycle transition, and the terminal outcomes a search invocation can
produce.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Protocol, Union

from ..core.dto import BaseDTO
from ..core.errors import HttpStatusError


# Returned by init-query when the per-token concurrent query quota is full,
# and by events when a FINISHED query's results are not queryable yet.
HTTP_CONFLICT = 409


class QueryState(str, Enum):
    """
    Job state reported by ``/dv/query-status``.
    """

    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"

    @property
    def is_terminal(self) -> bool:
        return self is not QueryState.RUNNING


@dataclass
class DVQueryRequest(BaseDTO):
    """
    A free-text Deep Visibility query over a time range.
    """

    query: str
    from_date: datetime
    to_date: datetime
    site_ids: Optional[List[str]] = None
    group_ids: Optional[List[str]] = None
    account_ids: Optional[List[str]] = None


@dataclass
class DVQueryStatus(BaseDTO):
    """
    Snapshot of job progress, re-fetched on every poll.
    """

    query_id: str
    state: QueryState
    progress: Optional[int] = None
    error: Optional[str] = None


@dataclass
class DVEventPage(BaseDTO):
    """
    One page of events for a finished query.
    """

    events: List[Dict[str, Any]]
    next_cursor: Optional[str] = None


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded fixed-delay retry for one lifecycle transition.

    ``max_attempts`` includes the first attempt. Only ``HttpStatusError``
    instances whose status code is in ``retry_on_status`` are retryable.
    """

    max_attempts: int
    delay_seconds: float
    retry_on_status: FrozenSet[int] = field(default=frozenset({HTTP_CONFLICT}))

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")

    def is_retryable(self, error: Exception) -> bool:
        return isinstance(error, HttpStatusError) and error.status_code in self.retry_on_status


@dataclass(frozen=True)
class PollPolicy:
    """
    Fixed-interval status polling with a maximum number of polls.
    """

    interval_seconds: float = 1.0
    max_polls: int = 30

    def __post_init__(self) -> None:
        if self.max_polls < 1:
            raise ValueError("max_polls must be at least 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")


class OutcomeKind(str, Enum):
    RESULTS = "results"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    FETCH_EXHAUSTED = "fetch_exhausted"
    SLOT_BUSY_EXHAUSTED = "slot_busy_exhausted"


@dataclass
class SearchResults(BaseDTO):
    """
    The job finished and its first page of events was fetched.

    ``events`` may be empty; that is a valid result, not a failure.
    """

    query_id: str
    events: List[Dict[str, Any]]
    next_cursor: Optional[str] = None
    kind: OutcomeKind = field(default=OutcomeKind.RESULTS, init=False)


@dataclass
class SearchFailed(BaseDTO):
    """
    The platform reported the job as FAILED or CANCELED.
    """

    query_id: str
    detail: str
    kind: OutcomeKind = field(default=OutcomeKind.FAILED, init=False)


@dataclass
class SearchTimedOut(BaseDTO):
    """
    The poll budget ran out while the job was still RUNNING.

    The job keeps running server-side; ``query_id`` stays valid for a later
    events fetch.
    """

    query_id: str
    polls: int
    kind: OutcomeKind = field(default=OutcomeKind.TIMED_OUT, init=False)


@dataclass
class FetchExhausted(BaseDTO):
    """
    The job FINISHED but its events never became queryable within the fetch
    retry budget.
    """

    query_id: str
    attempts: int
    kind: OutcomeKind = field(default=OutcomeKind.FETCH_EXHAUSTED, init=False)


@dataclass
class SlotBusyExhausted(BaseDTO):
    """
    Every creation attempt hit the concurrent query quota.
    """

    attempts: int
    kind: OutcomeKind = field(default=OutcomeKind.SLOT_BUSY_EXHAUSTED, init=False)


SearchOutcome = Union[
    SearchResults,
    SearchFailed,
    SearchTimedOut,
    FetchExhausted,
    SlotBusyExhausted,
]


class DeepVisibilityClient(Protocol):
    """
    Transport operations the search orchestrator is built on.
    """

    def create_dv_query(self, request: DVQueryRequest) -> str:
        ...

    def get_dv_query_status(self, query_id: str) -> DVQueryStatus:
        ...

    def get_dv_events(
        self,
        query_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> DVEventPage:
        ...
