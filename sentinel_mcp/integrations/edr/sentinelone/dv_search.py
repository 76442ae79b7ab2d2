"""
Deep Visibility search job lifecycle.

A Deep Visibility query runs server-side as a job that has to be created,
polled until it reaches a terminal state, and then have its events fetched.
The platform adds two transient conditions on top of that, both reported as
HTTP 409:

- creation fails while the per-token concurrent query quota is full;
- the events route can lag behind a FINISHED status.

``DVSearchOrchestrator`` drives one job through the lifecycle and returns a
single terminal outcome. The two 409 conditions get separate retry policies
and exhausting either one produces a soft outcome rather than an exception,
so callers can tell "try again shortly" apart from a real failure.

Phases run strictly in sequence. The sleep function is injected so the
attempt counts and delays can be tested without wall-clock waits.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional, Tuple

from ....api.deep_visibility import (
    DeepVisibilityClient,
    DVEventPage,
    DVQueryRequest,
    DVQueryStatus,
    FetchExhausted,
    PollPolicy,
    QueryState,
    RetryPolicy,
    SearchFailed,
    SearchOutcome,
    SearchResults,
    SearchTimedOut,
    SlotBusyExhausted,
)
from ....core.config import SearchConfig
from ....core.errors import HttpStatusError, SearchCancelledError, ValidationError
from ....core.logging import get_logger


logger = get_logger("sentinel_mcp.integrations.sentinelone.dv_search")

DEFAULT_CREATE_POLICY = RetryPolicy(max_attempts=6, delay_seconds=3.0)
DEFAULT_FETCH_POLICY = RetryPolicy(max_attempts=5, delay_seconds=2.0)
DEFAULT_POLL_POLICY = PollPolicy(interval_seconds=1.0, max_polls=30)
DEFAULT_PAGE_SIZE = 50


class DVSearchOrchestrator:
    """
    Runs Deep Visibility queries from submission to a terminal outcome.

    Instances hold no per-search state, so one orchestrator can serve any
    number of sequential or concurrent ``run`` calls.
    """

    def __init__(
        self,
        client: DeepVisibilityClient,
        create_policy: RetryPolicy = DEFAULT_CREATE_POLICY,
        fetch_policy: RetryPolicy = DEFAULT_FETCH_POLICY,
        poll_policy: PollPolicy = DEFAULT_POLL_POLICY,
        page_size: int = DEFAULT_PAGE_SIZE,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self.create_policy = create_policy
        self.fetch_policy = fetch_policy
        self.poll_policy = poll_policy
        self.page_size = page_size
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        client: DeepVisibilityClient,
        config: SearchConfig,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "DVSearchOrchestrator":
        """
        Factory to construct an orchestrator from ``SearchConfig``.
        """
        return cls(
            client=client,
            create_policy=RetryPolicy(
                max_attempts=config.create_max_attempts,
                delay_seconds=config.create_retry_delay_seconds,
            ),
            fetch_policy=RetryPolicy(
                max_attempts=config.fetch_max_attempts,
                delay_seconds=config.fetch_retry_delay_seconds,
            ),
            poll_policy=PollPolicy(
                interval_seconds=config.poll_interval_seconds,
                max_polls=config.max_polls,
            ),
            page_size=config.page_size,
            sleep=sleep,
        )

    def run(
        self,
        request: DVQueryRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> SearchOutcome:
        """
        Create, poll and fetch one Deep Visibility query.

        Args:
            request: Query text, time range and optional scope filters.
            cancel_event: Optional token; when set, the search stops at the
                next phase boundary or wait.

        Returns:
            One of ``SearchResults``, ``SearchFailed``, ``SearchTimedOut``,
            ``FetchExhausted`` or ``SlotBusyExhausted``.

        Raises:
            IntegrationError: A non-retryable request failure in any phase.
            SearchCancelledError: ``cancel_event`` was set.
            ValidationError: The query text is empty.
        """
        if not request.query or not request.query.strip():
            raise ValidationError("Deep Visibility query must not be empty")

        query_id = self._create(request, cancel_event)
        if query_id is None:
            logger.warning(
                f"Deep Visibility query slot still busy after "
                f"{self.create_policy.max_attempts} attempts"
            )
            return SlotBusyExhausted(attempts=self.create_policy.max_attempts)

        status, polls = self._poll(query_id, cancel_event)
        if status.state is QueryState.RUNNING:
            logger.info(f"Deep Visibility query {query_id} still running after {polls} polls")
            return SearchTimedOut(query_id=query_id, polls=polls)

        if status.state is QueryState.FAILED:
            detail = status.error or "Unknown error"
            logger.warning(f"Deep Visibility query {query_id} failed: {detail}")
            return SearchFailed(query_id=query_id, detail=detail)

        if status.state is QueryState.CANCELED:
            detail = status.error or "Query was canceled"
            logger.warning(f"Deep Visibility query {query_id} was canceled: {detail}")
            return SearchFailed(query_id=query_id, detail=detail)

        self._check_cancelled(cancel_event, query_id)
        page = self._fetch(query_id, cancel_event)
        if page is None:
            logger.warning(
                f"Deep Visibility query {query_id} finished but events were not "
                f"available after {self.fetch_policy.max_attempts} attempts"
            )
            return FetchExhausted(query_id=query_id, attempts=self.fetch_policy.max_attempts)

        logger.info(f"Deep Visibility query {query_id} returned {len(page.events)} event(s)")
        return SearchResults(
            query_id=query_id,
            events=page.events,
            next_cursor=page.next_cursor,
        )

    def _check_cancelled(
        self,
        cancel_event: Optional[threading.Event],
        query_id: Optional[str],
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Deep Visibility search cancelled (queryId={query_id})")
            raise SearchCancelledError(query_id)

    def _wait(
        self,
        seconds: float,
        cancel_event: Optional[threading.Event],
        query_id: Optional[str],
    ) -> None:
        self._check_cancelled(cancel_event, query_id)
        self._sleep(seconds)

    def _create(
        self,
        request: DVQueryRequest,
        cancel_event: Optional[threading.Event],
    ) -> Optional[str]:
        """Return the new queryId, or None once the slot-busy budget is spent."""
        policy = self.create_policy
        for attempt in range(1, policy.max_attempts + 1):
            self._check_cancelled(cancel_event, None)
            try:
                query_id = self._client.create_dv_query(request)
            except HttpStatusError as e:
                if not policy.is_retryable(e):
                    raise
                if attempt == policy.max_attempts:
                    return None
                logger.info(
                    f"Deep Visibility query slot busy (attempt {attempt}/"
                    f"{policy.max_attempts}), retrying in {policy.delay_seconds}s"
                )
                self._wait(policy.delay_seconds, cancel_event, None)
                continue
            logger.debug(f"Deep Visibility query created: {query_id}")
            return query_id
        return None

    def _poll(
        self,
        query_id: str,
        cancel_event: Optional[threading.Event],
    ) -> Tuple[DVQueryStatus, int]:
        """
        Poll until a terminal state or the poll budget runs out.

        Returns the last observed status and the number of polls made. No
        poll is issued after a terminal state has been seen.
        """
        policy = self.poll_policy
        status = DVQueryStatus(query_id=query_id, state=QueryState.RUNNING)
        polls = 0
        while polls < policy.max_polls:
            self._wait(policy.interval_seconds, cancel_event, query_id)
            status = self._client.get_dv_query_status(query_id)
            polls += 1
            if status.state.is_terminal:
                break
            if status.progress is not None:
                logger.debug(f"Deep Visibility query {query_id} progress: {status.progress}%")
        return status, polls

    def _fetch(
        self,
        query_id: str,
        cancel_event: Optional[threading.Event],
    ) -> Optional[DVEventPage]:
        """Return the first events page, or None once the fetch budget is spent."""
        policy = self.fetch_policy
        for attempt in range(1, policy.max_attempts + 1):
            try:
                return self._client.get_dv_events(query_id, limit=self.page_size)
            except HttpStatusError as e:
                if not policy.is_retryable(e):
                    raise
                if attempt == policy.max_attempts:
                    return None
                logger.info(
                    f"Deep Visibility events for {query_id} not ready (attempt "
                    f"{attempt}/{policy.max_attempts}), retrying in {policy.delay_seconds}s"
                )
                self._wait(policy.delay_seconds, cancel_event, query_id)
        return None
