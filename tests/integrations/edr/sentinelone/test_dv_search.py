"""
Unit tests for the Deep Visibility search lifecycle.

The transport is replaced by a scripted fake client and the sleep function
by a recorder, so attempt counts and delays are checked without waiting.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from sentinel_mcp.api.deep_visibility import (
    DVEventPage,
    DVQueryRequest,
    DVQueryStatus,
    FetchExhausted,
    OutcomeKind,
    PollPolicy,
    QueryState,
    RetryPolicy,
    SearchFailed,
    SearchResults,
    SearchTimedOut,
    SlotBusyExhausted,
)
from sentinel_mcp.core.config import SearchConfig
from sentinel_mcp.core.errors import (
    HttpStatusError,
    RequestTimeoutError,
    SearchCancelledError,
    TransportError,
    ValidationError,
)
from sentinel_mcp.integrations.edr.sentinelone.dv_search import DVSearchOrchestrator


SHA256 = "a" * 64


def _busy():
    return HttpStatusError(409, reason="Conflict", body="query slot busy")


def _status(state, error=None, query_id="q1"):
    return DVQueryStatus(query_id=query_id, state=state, error=error)


class FakeDVClient:
    """Scripted stand-in for SentinelOneClient's Deep Visibility routes."""

    def __init__(self, create=None, statuses=None, events=None):
        self.create_script = list(create or ["q1"])
        self.status_script = list(statuses or [_status(QueryState.FINISHED)])
        self.events_script = list(events or [DVEventPage(events=[])])
        self.create_calls = []
        self.status_calls = []
        self.events_calls = []

    @staticmethod
    def _next(script):
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, Exception):
            raise item
        return item

    def create_dv_query(self, request):
        self.create_calls.append(request)
        return self._next(self.create_script)

    def get_dv_query_status(self, query_id):
        self.status_calls.append(query_id)
        return self._next(self.status_script)

    def get_dv_events(self, query_id, limit=None, cursor=None):
        self.events_calls.append((query_id, limit, cursor))
        return self._next(self.events_script)


class SleepRecorder:
    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def request_():
    to_date = datetime(2026, 10, 1, tzinfo=timezone.utc)
    return DVQueryRequest(
        query=f'SHA256 = "{SHA256}"',
        from_date=to_date - timedelta(days=14),
        to_date=to_date,
    )


@pytest.fixture
def sleep():
    return SleepRecorder()


def _orchestrator(client, sleep, **kwargs):
    return DVSearchOrchestrator(client, sleep=sleep, **kwargs)


class TestHappyPath:
    def test_results_after_two_running_polls(self, request_, sleep):
        events = [
            {"agentName": "host-1", "eventType": "File Creation"},
            {"agentName": "host-2", "eventType": "Process Creation"},
        ]
        client = FakeDVClient(
            create=["q1"],
            statuses=[
                _status(QueryState.RUNNING),
                _status(QueryState.RUNNING),
                _status(QueryState.FINISHED),
            ],
            events=[DVEventPage(events=events)],
        )

        outcome = _orchestrator(client, sleep).run(request_)

        assert isinstance(outcome, SearchResults)
        assert outcome.kind is OutcomeKind.RESULTS
        assert outcome.query_id == "q1"
        assert outcome.events == events
        assert outcome.next_cursor is None
        assert len(client.create_calls) == 1
        assert client.status_calls == ["q1", "q1", "q1"]
        assert client.events_calls == [("q1", 50, None)]
        # One poll interval before each status check.
        assert sleep.delays == [1.0, 1.0, 1.0]

    def test_empty_results_are_not_a_failure(self, request_, sleep):
        client = FakeDVClient(events=[DVEventPage(events=[])])

        outcome = _orchestrator(client, sleep).run(request_)

        assert isinstance(outcome, SearchResults)
        assert outcome.events == []

    def test_next_cursor_is_carried(self, request_, sleep):
        client = FakeDVClient(events=[DVEventPage(events=[{"id": "e1"}], next_cursor="c2")])

        outcome = _orchestrator(client, sleep).run(request_)

        assert outcome.next_cursor == "c2"

    def test_blank_query_rejected_before_any_request(self, sleep):
        client = FakeDVClient()
        now = datetime.now(timezone.utc)
        request = DVQueryRequest(query="   ", from_date=now, to_date=now)

        with pytest.raises(ValidationError):
            _orchestrator(client, sleep).run(request)

        assert client.create_calls == []


class TestCreation:
    def test_slot_busy_then_success(self, request_, sleep):
        client = FakeDVClient(create=[_busy(), _busy(), "q1"])

        outcome = _orchestrator(client, sleep).run(request_)

        assert isinstance(outcome, SearchResults)
        assert len(client.create_calls) == 3
        # Two creation delays, then the first poll interval.
        assert sleep.delays[:2] == [3.0, 3.0]
        assert sleep.delays[2] == 1.0

    def test_slot_busy_exhausted(self, request_, sleep):
        client = FakeDVClient(create=[_busy()])

        outcome = _orchestrator(client, sleep).run(request_)

        assert isinstance(outcome, SlotBusyExhausted)
        assert outcome.kind is OutcomeKind.SLOT_BUSY_EXHAUSTED
        assert outcome.attempts == 6
        assert len(client.create_calls) == 6
        assert sleep.delays == [3.0] * 5
        assert client.status_calls == []

    @pytest.mark.parametrize(
        "error",
        [
            HttpStatusError(400, reason="Bad Request", body="bad query"),
            HttpStatusError(401, reason="Unauthorized"),
            RequestTimeoutError(30),
            TransportError("connection reset"),
        ],
    )
    def test_other_errors_are_fatal_without_retry(self, request_, sleep, error):
        client = FakeDVClient(create=[error])

        with pytest.raises(type(error)):
            _orchestrator(client, sleep).run(request_)

        assert len(client.create_calls) == 1
        assert sleep.delays == []

    def test_fatal_error_after_busy_retries_propagates(self, request_, sleep):
        client = FakeDVClient(create=[_busy(), HttpStatusError(500, reason="Server Error")])

        with pytest.raises(HttpStatusError) as exc_info:
            _orchestrator(client, sleep).run(request_)

        assert exc_info.value.status_code == 500
        assert len(client.create_calls) == 2

    def test_custom_policy(self, request_, sleep):
        client = FakeDVClient(create=[_busy()])
        orchestrator = _orchestrator(
            client, sleep, create_policy=RetryPolicy(max_attempts=2, delay_seconds=0.5)
        )

        outcome = orchestrator.run(request_)

        assert isinstance(outcome, SlotBusyExhausted)
        assert len(client.create_calls) == 2
        assert sleep.delays == [0.5]


class TestPolling:
    def test_timed_out_after_budget(self, request_, sleep):
        client = FakeDVClient(statuses=[_status(QueryState.RUNNING)])

        outcome = _orchestrator(client, sleep).run(request_)

        assert isinstance(outcome, SearchTimedOut)
        assert outcome.kind is OutcomeKind.TIMED_OUT
        assert outcome.query_id == "q1"
        assert outcome.polls == 30
        assert len(client.status_calls) == 30
        assert client.events_calls == []

    @pytest.mark.parametrize("terminal_index", [0, 4, 29])
    def test_no_poll_after_terminal_state(self, request_, sleep, terminal_index):
        statuses = [_status(QueryState.RUNNING)] * terminal_index + [
            _status(QueryState.FINISHED),
            _status(QueryState.RUNNING),
        ]
        client = FakeDVClient(statuses=statuses)

        _orchestrator(client, sleep).run(request_)

        assert len(client.status_calls) == terminal_index + 1

    def test_failed_with_detail(self, request_, sleep):
        client = FakeDVClient(statuses=[_status(QueryState.FAILED, error="Syntax error at 'SHA256'")])

        outcome = _orchestrator(client, sleep).run(request_)

        assert isinstance(outcome, SearchFailed)
        assert outcome.kind is OutcomeKind.FAILED
        assert outcome.detail == "Syntax error at 'SHA256'"
        assert len(client.status_calls) == 1
        assert client.events_calls == []

    def test_failed_without_detail(self, request_, sleep):
        client = FakeDVClient(statuses=[_status(QueryState.FAILED)])

        outcome = _orchestrator(client, sleep).run(request_)

        assert isinstance(outcome, SearchFailed)
        assert outcome.detail == "Unknown error"

    def test_canceled_is_terminal_failure(self, request_, sleep):
        client = FakeDVClient(statuses=[_status(QueryState.RUNNING), _status(QueryState.CANCELED)])

        outcome = _orchestrator(client, sleep).run(request_)

        assert isinstance(outcome, SearchFailed)
        assert "canceled" in outcome.detail.lower()
        assert len(client.status_calls) == 2
        assert client.events_calls == []

    def test_status_error_is_fatal(self, request_, sleep):
        client = FakeDVClient(statuses=[_status(QueryState.RUNNING), TransportError("reset")])

        with pytest.raises(TransportError):
            _orchestrator(client, sleep).run(request_)

        assert len(client.status_calls) == 2


class TestFetching:
    def test_not_ready_then_results(self, request_, sleep):
        client = FakeDVClient(
            events=[_busy(), _busy(), DVEventPage(events=[{"id": "e1"}])],
        )

        outcome = _orchestrator(client, sleep).run(request_)

        assert isinstance(outcome, SearchResults)
        assert len(client.events_calls) == 3
        assert sleep.delays == [1.0, 2.0, 2.0]

    def test_fetch_exhausted_carries_query_id(self, request_, sleep):
        client = FakeDVClient(create=["q-42"], events=[_busy()])

        outcome = _orchestrator(client, sleep).run(request_)

        assert isinstance(outcome, FetchExhausted)
        assert outcome.kind is OutcomeKind.FETCH_EXHAUSTED
        assert outcome.query_id == "q-42"
        assert outcome.attempts == 5
        assert len(client.events_calls) == 5
        assert all(call[0] == "q-42" for call in client.events_calls)

    def test_fetch_fatal_error(self, request_, sleep):
        client = FakeDVClient(events=[HttpStatusError(404, reason="Not Found")])

        with pytest.raises(HttpStatusError):
            _orchestrator(client, sleep).run(request_)

        assert len(client.events_calls) == 1


class TestCancellation:
    def test_cancel_before_submission(self, request_, sleep):
        client = FakeDVClient()
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(SearchCancelledError) as exc_info:
            _orchestrator(client, sleep).run(request_, cancel_event=cancel)

        assert exc_info.value.query_id is None
        assert client.create_calls == []

    def test_cancel_during_polling_keeps_query_id(self, request_):
        cancel = threading.Event()
        client = FakeDVClient(statuses=[_status(QueryState.RUNNING)])
        polls = []

        def sleep(seconds):
            polls.append(seconds)
            if len(polls) == 3:
                cancel.set()

        orchestrator = DVSearchOrchestrator(client, sleep=sleep)

        with pytest.raises(SearchCancelledError) as exc_info:
            orchestrator.run(request_, cancel_event=cancel)

        assert exc_info.value.query_id == "q1"
        assert len(client.status_calls) == 3


class TestConfiguration:
    def test_from_config(self, request_, sleep):
        config = SearchConfig(
            create_max_attempts=2,
            create_retry_delay_seconds=0.1,
            poll_interval_seconds=0.2,
            max_polls=3,
            fetch_max_attempts=2,
            fetch_retry_delay_seconds=0.3,
            page_size=10,
        )
        client = FakeDVClient(statuses=[_status(QueryState.RUNNING)])

        orchestrator = DVSearchOrchestrator.from_config(client, config, sleep=sleep)
        outcome = orchestrator.run(request_)

        assert isinstance(outcome, SearchTimedOut)
        assert outcome.polls == 3
        assert sleep.delays == [0.2, 0.2, 0.2]
        assert orchestrator.page_size == 10

    def test_policies_validate_bounds(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0, delay_seconds=1)
        with pytest.raises(ValueError):
            PollPolicy(max_polls=0)

    def test_retry_predicate_uses_status_code(self):
        policy = RetryPolicy(max_attempts=3, delay_seconds=1)

        assert policy.is_retryable(HttpStatusError(409))
        assert not policy.is_retryable(HttpStatusError(429))
        # A 409 mentioned only in message text is not a 409 response.
        assert not policy.is_retryable(TransportError("HTTP 409 from proxy"))

    def test_outcome_to_dict(self):
        outcome = SearchTimedOut(query_id="q1", polls=30)

        assert outcome.to_dict() == {"query_id": "q1", "polls": 30, "kind": OutcomeKind.TIMED_OUT}
