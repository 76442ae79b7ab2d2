"""
LLM-callable tools for Deep Visibility searches.

``dv_query`` and ``hash_reputation`` run a full search job through
``DVSearchOrchestrator`` and render its terminal outcome. ``dv_get_events``
is the manual follow-up for a queryId handed out by a timed-out or
fetch-exhausted search, and for paging through results.

Outcomes that mean "nothing will change if you retry" (FAILED, slot busy)
are raised as ``IntegrationError`` so the MCP layer flags them as errors;
the resumable outcomes are returned as normal text carrying the queryId.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ..api.deep_visibility import (
    DeepVisibilityClient,
    DVQueryRequest,
    FetchExhausted,
    SearchFailed,
    SearchOutcome,
    SearchResults,
    SearchTimedOut,
    SlotBusyExhausted,
)
from ..core.errors import IntegrationError, ValidationError
from ..integrations.edr.sentinelone.dv_search import DVSearchOrchestrator
from .formatting import format_time_ago, truncate, truncate_path
from .schemas import DVGetEventsArgs, DVQueryArgs, HashLookupArgs, parse_args


HASH_LOOKBACK = timedelta(days=14)
DEFAULT_QUERY_LOOKBACK = timedelta(hours=24)

SLOT_BUSY_MESSAGE = "DV query slot busy - another query is still processing. Try again shortly."


def summarize_event(event: Dict[str, Any]) -> str:
    """One line per event: endpoint, event type, process, age, details."""
    time_ago = format_time_ago(event.get("eventTime")) if event.get("eventTime") else "unknown"
    event_type = event.get("eventType") or "Unknown"
    process = event.get("processName") or "N/A"
    agent = event.get("agentName") or "Unknown"
    user = event.get("processUser") or event.get("user") or ""

    details = ""
    if event.get("filePath"):
        details += f" | {truncate_path(event['filePath'], 60)}"
    if event.get("processCommandLine"):
        details += f" | cmd: {event['processCommandLine'][:80]}"
    if event.get("dstIp"):
        port = f":{event['dstPort']}" if event.get("dstPort") else ""
        details += f" | dst: {event['dstIp']}{port}"
    if event.get("dnsRequest"):
        details += f" | dns: {truncate(event['dnsRequest'], 80)}"
    if event.get("url"):
        details += f" | url: {truncate(event['url'], 80)}"
    if event.get("registryPath"):
        details += f" | reg: {truncate_path(event['registryPath'], 80)}"
    if user:
        details += f" | {user}"

    return f"• {agent} | {event_type} | {process} | {time_ago}{details}"


def _more_results_footer(query_id: str, next_cursor: Optional[str]) -> str:
    if not next_cursor:
        return ""
    return f"\n\n[More results - use s1_dv_get_events with queryId: {query_id}, cursor: {next_cursor}]"


def _render_pending(outcome: SearchOutcome) -> Optional[str]:
    """Text for outcomes shared by every search tool; None for RESULTS."""
    if isinstance(outcome, SlotBusyExhausted):
        raise IntegrationError(SLOT_BUSY_MESSAGE)
    if isinstance(outcome, SearchTimedOut):
        return (
            f"Query still running after {outcome.polls} status checks. "
            f"Use s1_dv_get_events with queryId: {outcome.query_id}"
        )
    if isinstance(outcome, FetchExhausted):
        return (
            "Query completed but events not available after retries. "
            f"Use s1_dv_get_events with queryId: {outcome.query_id}"
        )
    return None


def _distinct_agents(events: List[Dict[str, Any]]) -> int:
    return len({e.get("agentName") or "Unknown" for e in events})


def hash_reputation(
    args: Optional[Dict[str, Any]] = None,
    orchestrator: DVSearchOrchestrator = None,  # type: ignore
    now: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """
    Hunt a SHA1/SHA256 hash across the fleet for the last 14 days.

    Tool schema:
    - name: s1_hash_reputation
    - parameters:
      - hash (str, required): 40 (SHA1) or 64 (SHA256) hex characters.

    The hash is validated before any search job is created.
    """
    if orchestrator is None:
        raise IntegrationError("Deep Visibility search not configured")

    params = parse_args(HashLookupArgs, args)
    hash_field = params.hash_field
    to_date = now or datetime.now(timezone.utc)
    request = DVQueryRequest(
        query=f'{hash_field} = "{params.hash}"',
        from_date=to_date - HASH_LOOKBACK,
        to_date=to_date,
    )

    outcome = orchestrator.run(request, cancel_event=cancel_event)

    if isinstance(outcome, SearchFailed):
        raise IntegrationError(f"DV hash query failed: {outcome.detail}")
    pending = _render_pending(outcome)
    if pending is not None:
        return pending

    if not isinstance(outcome, SearchResults):
        raise IntegrationError(f"Unexpected search outcome: {outcome.kind.value}")
    if not outcome.events:
        return f"No activity found for {hash_field} {params.hash} in the last 14 days."

    header = (
        f"Hash {hash_field} {params.hash}\n"
        f"Seen on {_distinct_agents(outcome.events)} endpoint(s) | "
        f"{len(outcome.events)} event(s) in last 14 days:\n\n"
    )
    summary = "\n".join(summarize_event(e) for e in outcome.events)
    return header + summary + _more_results_footer(outcome.query_id, outcome.next_cursor)


def dv_query(
    args: Optional[Dict[str, Any]] = None,
    orchestrator: DVSearchOrchestrator = None,  # type: ignore
    now: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """
    Run a free-text Deep Visibility query.

    Tool schema:
    - name: s1_dv_query
    - parameters:
      - query (str, required): e.g. ``ProcessName Contains "python"``
      - fromDate / toDate (ISO-8601, optional): default is the last 24 hours
      - siteIds / groupIds / accountIds (list of str, optional)
    """
    if orchestrator is None:
        raise IntegrationError("Deep Visibility search not configured")

    params = parse_args(DVQueryArgs, args)
    to_date = params.to_date or now or datetime.now(timezone.utc)
    from_date = params.from_date or (to_date - DEFAULT_QUERY_LOOKBACK)
    if from_date > to_date:
        raise ValidationError("fromDate must not be after toDate")
    request = DVQueryRequest.from_dict(
        {**params.model_dump(), "from_date": from_date, "to_date": to_date}
    )

    outcome = orchestrator.run(request, cancel_event=cancel_event)

    if isinstance(outcome, SearchFailed):
        raise IntegrationError(f"DV query failed: {outcome.detail}")
    pending = _render_pending(outcome)
    if pending is not None:
        return pending

    if not isinstance(outcome, SearchResults):
        raise IntegrationError(f"Unexpected search outcome: {outcome.kind.value}")
    if not outcome.events:
        return f"Query completed (queryId: {outcome.query_id}) with no matching events."

    header = (
        f"Query completed (queryId: {outcome.query_id})\n"
        f"{len(outcome.events)} event(s) on {_distinct_agents(outcome.events)} endpoint(s):\n\n"
    )
    summary = "\n".join(summarize_event(e) for e in outcome.events)
    return header + summary + _more_results_footer(outcome.query_id, outcome.next_cursor)


def dv_get_events(
    args: Optional[Dict[str, Any]] = None,
    client: DeepVisibilityClient = None,  # type: ignore
) -> str:
    """
    Fetch events of an existing Deep Visibility query.

    Tool schema:
    - name: s1_dv_get_events
    - parameters:
      - queryId (str, required)
      - limit (int, optional, default 50)
      - cursor (str, optional)
    """
    if client is None:
        raise IntegrationError("SentinelOne client not provided")

    params = parse_args(DVGetEventsArgs, args)
    page = client.get_dv_events(params.query_id, limit=params.limit, cursor=params.cursor)

    if not page.events:
        return f"No events for queryId {params.query_id}."

    header = f"Events for queryId {params.query_id} ({len(page.events)}):\n\n"
    summary = "\n".join(summarize_event(e) for e in page.events)
    return header + summary + _more_results_footer(params.query_id, page.next_cursor)
