"""
Unit tests for the SentinelOne REST client.

The HTTP executor is mocked; these tests check route selection, query
parameter building and payload mapping.
"""

from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import Mock

from sentinel_mcp.api.deep_visibility import DVQueryRequest, QueryState
from sentinel_mcp.api.edr import AgentFilter, MitigationAction, ThreatFilter
from sentinel_mcp.core.config import AppConfig, SentinelOneConfig
from sentinel_mcp.core.errors import IntegrationError
from sentinel_mcp.integrations.edr.sentinelone.sentinelone_client import (
    SentinelOneClient,
    agent_params,
    threat_params,
)


@pytest.fixture
def http():
    return Mock()


@pytest.fixture
def client(http):
    return SentinelOneClient(http_client=http)


class TestParams:
    def test_threat_params_skip_empty_values(self):
        assert threat_params(None) == {}
        assert threat_params(ThreatFilter(site_ids=[], resolved=None)) == {}

    def test_threat_params_all_filters(self):
        params = threat_params(
            ThreatFilter(
                limit=10,
                cursor="abc",
                site_ids=["s1", "s2"],
                group_ids=["g1"],
                resolved=False,
                mitigation_statuses=["not_mitigated"],
                classifications=["Malware", "PUA"],
                analyst_verdicts=["true_positive"],
                computer_name_contains="web",
                threat_name_contains="mimikatz",
            )
        )

        assert params == {
            "limit": 10,
            "cursor": "abc",
            "siteIds": "s1,s2",
            "groupIds": "g1",
            "resolved": "false",
            "mitigationStatuses": "not_mitigated",
            "classifications": "Malware,PUA",
            "analystVerdicts": "true_positive",
            "computerName__contains": "web",
            "threatDetails__contains": "mimikatz",
        }

    def test_agent_params(self):
        params = agent_params(
            AgentFilter(
                os_types=["windows"],
                is_active=True,
                is_infected=False,
                network_statuses=["connected", "disconnected"],
                computer_name_contains="db",
            )
        )

        assert params == {
            "osTypes": "windows",
            "isActive": "true",
            "isInfected": "false",
            "networkStatuses": "connected,disconnected",
            "computerName__contains": "db",
        }


class TestThreats:
    def test_list_threats_maps_payload(self, client, http):
        http.get.return_value = {
            "data": [
                {
                    "id": "t1",
                    "threatName": "evil.exe",
                    "agentComputerName": "host-1",
                    "mitigationStatus": "mitigated",
                    "threatInfo": {"sha256": "f" * 64, "filePath": "C:\\evil.exe"},
                }
            ],
            "pagination": {"nextCursor": "next", "totalItems": 7},
        }

        page = client.list_threats(ThreatFilter(limit=1))

        http.get.assert_called_once_with("/threats", params={"limit": 1})
        assert page.next_cursor == "next"
        assert page.total_items == 7
        threat = page.items[0]
        assert threat.id == "t1"
        assert threat.threat_name == "evil.exe"
        assert threat.threat_info.sha256 == "f" * 64
        assert threat.threat_info.file_path == "C:\\evil.exe"

    def test_list_threats_without_filters(self, client, http):
        http.get.return_value = {"data": []}

        page = client.list_threats()

        http.get.assert_called_once_with("/threats", params=None)
        assert page.items == []
        assert page.next_cursor is None

    def test_get_threat_not_found(self, client, http):
        http.get.return_value = {"data": []}

        assert client.get_threat("missing") is None
        http.get.assert_called_once_with("/threats", params={"ids": "missing"})

    def test_mitigate_threat(self, client, http):
        http.post.return_value = {"data": {"affected": 1}}

        affected = client.mitigate_threat("t1", MitigationAction.ROLLBACK_REMEDIATION)

        assert affected == 1
        http.post.assert_called_once_with(
            "/threats/mitigate/rollback-remediation",
            json_data={"filter": {"ids": ["t1"]}},
        )

    def test_mitigate_threat_rejects_unknown_action(self, client, http):
        with pytest.raises(ValueError):
            client.mitigate_threat("t1", "delete")
        http.post.assert_not_called()


class TestAgents:
    def test_get_agent_maps_interfaces(self, client, http):
        http.get.return_value = {
            "data": [
                {
                    "id": "a1",
                    "computerName": "host-1",
                    "isActive": True,
                    "networkInterfaces": [{"name": "eth0", "inet": ["10.0.0.5"], "physical": "aa:bb"}],
                }
            ]
        }

        agent = client.get_agent("a1")

        assert agent.computer_name == "host-1"
        assert agent.is_active is True
        assert agent.network_interfaces[0].inet == ["10.0.0.5"]

    def test_isolate_and_reconnect_routes(self, client, http):
        http.post.return_value = {"data": {"affected": 1}}

        client.isolate_agent("a1")
        client.reconnect_agent("a1")

        routes = [call[0][0] for call in http.post.call_args_list]
        assert routes == ["/agents/actions/disconnect", "/agents/actions/connect"]


class TestDeepVisibility:
    def test_create_dv_query_body(self, client, http):
        http.post.return_value = {"data": {"queryId": "q1", "status": "RUNNING"}}
        request = DVQueryRequest(
            query='ProcessName Contains "python"',
            from_date=datetime(2026, 10, 1, tzinfo=timezone.utc),
            to_date=datetime(2026, 10, 2, tzinfo=timezone.utc),
            site_ids=["s1"],
            group_ids=[],
        )

        query_id = client.create_dv_query(request)

        assert query_id == "q1"
        http.post.assert_called_once_with(
            "/dv/init-query",
            json_data={
                "query": 'ProcessName Contains "python"',
                "fromDate": "2026-10-01T00:00:00Z",
                "toDate": "2026-10-02T00:00:00Z",
                "siteIds": ["s1"],
            },
        )

    def test_create_dv_query_dates_sent_as_utc(self, client, http):
        http.post.return_value = {"data": {"queryId": "q1"}}
        request = DVQueryRequest(
            query="x",
            from_date=datetime(2026, 10, 1, 8, 30),
            to_date=datetime(2026, 10, 1, 12, 0, tzinfo=timezone(timedelta(hours=2))),
        )

        client.create_dv_query(request)

        body = http.post.call_args.kwargs["json_data"]
        assert body["fromDate"] == "2026-10-01T08:30:00Z"
        assert body["toDate"] == "2026-10-01T10:00:00Z"

    def test_create_dv_query_without_query_id(self, client, http):
        http.post.return_value = {"data": {}}
        now = datetime.now(timezone.utc)

        with pytest.raises(IntegrationError):
            client.create_dv_query(DVQueryRequest(query="x", from_date=now, to_date=now))

    def test_get_dv_query_status(self, client, http):
        http.get.return_value = {
            "data": {"queryId": "q1", "status": "FAILED", "progressStatus": 40, "responseError": "bad syntax"}
        }

        status = client.get_dv_query_status("q1")

        http.get.assert_called_once_with("/dv/query-status", params={"queryId": "q1"})
        assert status.state is QueryState.FAILED
        assert status.state.is_terminal
        assert status.progress == 40
        assert status.error == "bad syntax"

    def test_get_dv_query_status_unknown_state(self, client, http):
        http.get.return_value = {"data": {"queryId": "q1", "status": "EXPLODED"}}

        with pytest.raises(IntegrationError):
            client.get_dv_query_status("q1")

    def test_get_dv_events(self, client, http):
        http.get.return_value = {"data": [{"id": "e1"}], "pagination": {"nextCursor": "c2"}}

        page = client.get_dv_events("q1", limit=50, cursor="c1")

        http.get.assert_called_once_with(
            "/dv/events", params={"queryId": "q1", "limit": 50, "cursor": "c1"}
        )
        assert page.events == [{"id": "e1"}]
        assert page.next_cursor == "c2"


def test_from_config():
    config = AppConfig(
        sentinelone=SentinelOneConfig(
            api_base="https://console.example/",
            api_key="key",
            timeout_seconds=12,
            verify_ssl=False,
        )
    )

    client = SentinelOneClient.from_config(config)

    assert client._http.base_url == "https://console.example"
    assert client._http.timeout_seconds == 12
    assert client._http.verify_ssl is False
