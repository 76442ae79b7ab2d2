"""
SentinelOne implementation of the ``EDRClient`` and ``DeepVisibilityClient``
interfaces.

Each method maps to exactly one REST route and converts the platform's
camelCase payloads into DTOs.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ....api.deep_visibility import (
    DVEventPage,
    DVQueryRequest,
    DVQueryStatus,
    QueryState,
)
from ....api.edr import (
    Agent,
    AgentFilter,
    MitigationAction,
    NetworkInterface,
    Page,
    Threat,
    ThreatFileInfo,
    ThreatFilter,
)
from ....core.config import AppConfig
from ....core.errors import IntegrationError
from ....core.logging import get_logger
from .sentinelone_http import SentinelOneHttpClient


logger = get_logger("sentinel_mcp.integrations.sentinelone.client")


def _set_list(params: Dict[str, Any], key: str, values: Optional[List[str]]) -> None:
    if values:
        params[key] = ",".join(values)


def _set_bool(params: Dict[str, Any], key: str, value: Optional[bool]) -> None:
    if value is not None:
        params[key] = "true" if value else "false"


def _isoformat(value: Any) -> str:
    if isinstance(value, datetime):
        # The console expects UTC with a "Z" suffix; naive values are taken as UTC.
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        else:
            value = value.astimezone(timezone.utc)
        return value.isoformat().replace("+00:00", "Z")
    return str(value)


def threat_params(filters: Optional[ThreatFilter]) -> Dict[str, Any]:
    """Build query parameters for ``GET /threats``."""
    params: Dict[str, Any] = {}
    if filters is None:
        return params
    if filters.limit:
        params["limit"] = filters.limit
    if filters.cursor:
        params["cursor"] = filters.cursor
    _set_list(params, "siteIds", filters.site_ids)
    _set_list(params, "groupIds", filters.group_ids)
    _set_bool(params, "resolved", filters.resolved)
    _set_list(params, "mitigationStatuses", filters.mitigation_statuses)
    _set_list(params, "classifications", filters.classifications)
    _set_list(params, "analystVerdicts", filters.analyst_verdicts)
    if filters.computer_name_contains:
        params["computerName__contains"] = filters.computer_name_contains
    if filters.threat_name_contains:
        params["threatDetails__contains"] = filters.threat_name_contains
    return params


def agent_params(filters: Optional[AgentFilter]) -> Dict[str, Any]:
    """Build query parameters for ``GET /agents``."""
    params: Dict[str, Any] = {}
    if filters is None:
        return params
    if filters.limit:
        params["limit"] = filters.limit
    if filters.cursor:
        params["cursor"] = filters.cursor
    _set_list(params, "siteIds", filters.site_ids)
    _set_list(params, "groupIds", filters.group_ids)
    if filters.computer_name_contains:
        params["computerName__contains"] = filters.computer_name_contains
    _set_list(params, "osTypes", filters.os_types)
    _set_bool(params, "isActive", filters.is_active)
    _set_bool(params, "isInfected", filters.is_infected)
    _set_list(params, "networkStatuses", filters.network_statuses)
    return params


def s1_threat_to_generic(raw: Dict[str, Any]) -> Threat:
    info = raw.get("threatInfo")
    threat_info = None
    if isinstance(info, dict):
        threat_info = ThreatFileInfo(
            sha1=info.get("sha1"),
            sha256=info.get("sha256"),
            md5=info.get("md5"),
            file_path=info.get("filePath"),
            file_size=info.get("fileSize"),
        )
    return Threat(
        id=str(raw.get("id", "")),
        agent_id=raw.get("agentId") or "",
        agent_computer_name=raw.get("agentComputerName") or "",
        agent_os_type=raw.get("agentOsType") or "",
        classification=raw.get("classification") or "",
        classification_source=raw.get("classificationSource") or "",
        confidence_level=raw.get("confidenceLevel") or "",
        created_at=raw.get("createdAt") or "",
        description=raw.get("description") or "",
        file_content_hash=raw.get("fileContentHash") or "",
        file_path=raw.get("filePath") or "",
        initiated_by=raw.get("initiatedBy") or "",
        initiated_by_description=raw.get("initiatedByDescription") or "",
        mitigation_status=raw.get("mitigationStatus") or "",
        threat_name=raw.get("threatName") or "",
        storyline_id=raw.get("storylineId") or "",
        threat_info=threat_info,
    )


def s1_agent_to_generic(raw: Dict[str, Any]) -> Agent:
    interfaces = [
        NetworkInterface(
            name=iface.get("name") or "",
            physical=iface.get("physical") or "",
            inet=list(iface.get("inet") or []),
        )
        for iface in raw.get("networkInterfaces") or []
        if isinstance(iface, dict)
    ]
    return Agent(
        id=str(raw.get("id", "")),
        uuid=raw.get("uuid") or "",
        computer_name=raw.get("computerName") or "",
        domain=raw.get("domain") or "",
        site_name=raw.get("siteName") or "",
        group_name=raw.get("groupName") or "",
        os_name=raw.get("osName") or "",
        os_type=raw.get("osType") or "",
        agent_version=raw.get("agentVersion") or "",
        is_active=bool(raw.get("isActive")),
        is_decommissioned=bool(raw.get("isDecommissioned")),
        infected=bool(raw.get("infected")),
        network_status=raw.get("networkStatus") or "",
        last_active_date=raw.get("lastActiveDate") or "",
        external_ip=raw.get("externalIp") or "",
        network_interfaces=interfaces,
    )


def _pagination(response: Dict[str, Any]) -> Dict[str, Any]:
    pagination = response.get("pagination")
    return pagination if isinstance(pagination, dict) else {}


class SentinelOneClient:
    """
    Client for the SentinelOne threat, agent and Deep Visibility routes.
    """

    def __init__(self, http_client: SentinelOneHttpClient) -> None:
        self._http = http_client

    @classmethod
    def from_config(cls, config: AppConfig) -> "SentinelOneClient":
        """
        Factory to construct a client from ``AppConfig``.
        """
        s1 = config.sentinelone
        http_client = SentinelOneHttpClient(
            base_url=s1.api_base,
            api_key=s1.api_key,
            timeout_seconds=s1.timeout_seconds,
            verify_ssl=s1.verify_ssl,
        )
        return cls(http_client=http_client)

    # ------------------------------------------------------------------
    # Threats
    # ------------------------------------------------------------------

    def list_threats(self, filters: Optional[ThreatFilter] = None) -> Page[Threat]:
        response = self._http.get("/threats", params=threat_params(filters) or None)
        pagination = _pagination(response)
        return Page(
            items=[s1_threat_to_generic(t) for t in response.get("data") or []],
            next_cursor=pagination.get("nextCursor"),
            total_items=pagination.get("totalItems"),
        )

    def get_threat(self, threat_id: str) -> Optional[Threat]:
        response = self._http.get("/threats", params={"ids": threat_id})
        data = response.get("data") or []
        return s1_threat_to_generic(data[0]) if data else None

    def mitigate_threat(self, threat_id: str, action: MitigationAction) -> int:
        """Run a mitigation action; returns the number of affected threats."""
        action = MitigationAction(action)
        response = self._http.post(
            f"/threats/mitigate/{action.value}",
            json_data={"filter": {"ids": [threat_id]}},
        )
        return int((response.get("data") or {}).get("affected", 0))

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def list_agents(self, filters: Optional[AgentFilter] = None) -> Page[Agent]:
        response = self._http.get("/agents", params=agent_params(filters) or None)
        pagination = _pagination(response)
        return Page(
            items=[s1_agent_to_generic(a) for a in response.get("data") or []],
            next_cursor=pagination.get("nextCursor"),
            total_items=pagination.get("totalItems"),
        )

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        response = self._http.get("/agents", params={"ids": agent_id})
        data = response.get("data") or []
        return s1_agent_to_generic(data[0]) if data else None

    def isolate_agent(self, agent_id: str) -> int:
        """Disconnect an agent from the network; returns the affected count."""
        response = self._http.post(
            "/agents/actions/disconnect",
            json_data={"filter": {"ids": [agent_id]}},
        )
        return int((response.get("data") or {}).get("affected", 0))

    def reconnect_agent(self, agent_id: str) -> int:
        """Remove network isolation; returns the affected count."""
        response = self._http.post(
            "/agents/actions/connect",
            json_data={"filter": {"ids": [agent_id]}},
        )
        return int((response.get("data") or {}).get("affected", 0))

    # ------------------------------------------------------------------
    # Deep Visibility
    # ------------------------------------------------------------------

    def create_dv_query(self, request: DVQueryRequest) -> str:
        """Submit a query job and return its queryId."""
        body: Dict[str, Any] = {
            "query": request.query,
            "fromDate": _isoformat(request.from_date),
            "toDate": _isoformat(request.to_date),
        }
        if request.site_ids:
            body["siteIds"] = request.site_ids
        if request.group_ids:
            body["groupIds"] = request.group_ids
        if request.account_ids:
            body["accountIds"] = request.account_ids

        response = self._http.post("/dv/init-query", json_data=body)
        query_id = (response.get("data") or {}).get("queryId")
        if not query_id:
            raise IntegrationError("Deep Visibility init-query returned no queryId")
        return str(query_id)

    def get_dv_query_status(self, query_id: str) -> DVQueryStatus:
        response = self._http.get("/dv/query-status", params={"queryId": query_id})
        data = response.get("data") or {}
        raw_state = data.get("status")
        try:
            state = QueryState(raw_state)
        except ValueError as e:
            raise IntegrationError(
                f"Unexpected Deep Visibility query status: {raw_state!r}"
            ) from e
        return DVQueryStatus(
            query_id=str(data.get("queryId") or query_id),
            state=state,
            progress=data.get("progressStatus"),
            error=data.get("responseError"),
        )

    def get_dv_events(
        self,
        query_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> DVEventPage:
        params: Dict[str, Any] = {"queryId": query_id}
        if limit:
            params["limit"] = limit
        if cursor:
            params["cursor"] = cursor
        response = self._http.get("/dv/events", params=params)
        return DVEventPage(
            events=list(response.get("data") or []),
            next_cursor=_pagination(response).get("nextCursor"),
        )
