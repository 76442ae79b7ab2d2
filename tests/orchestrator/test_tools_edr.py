"""
Unit tests for the threat and agent tools.
"""

import pytest
from unittest.mock import Mock

from sentinel_mcp.api.edr import (
    Agent,
    MitigationAction,
    NetworkInterface,
    Page,
    Threat,
    ThreatFileInfo,
)
from sentinel_mcp.core.errors import IntegrationError, ValidationError
from sentinel_mcp.orchestrator import tools_agents, tools_threats


@pytest.fixture
def client():
    return Mock()


class TestThreatTools:
    def test_list_threats_passes_filters(self, client):
        client.list_threats.return_value = Page(
            items=[Threat(id="t1", threat_name="evil.exe", agent_computer_name="host-1")],
            next_cursor="n1",
            total_items=3,
        )

        text = tools_threats.list_threats(
            {"limit": 1, "siteIds": ["s1"], "resolved": False, "threatName": "evil"},
            client=client,
        )

        filters = client.list_threats.call_args[0][0]
        assert filters.limit == 1
        assert filters.site_ids == ["s1"]
        assert filters.resolved is False
        assert filters.threat_name_contains == "evil"
        assert text.startswith("Threats (1 of 3):")
        assert "evil.exe | host-1" in text
        assert "cursor: n1" in text

    def test_list_threats_empty(self, client):
        client.list_threats.return_value = Page(items=[])

        assert tools_threats.list_threats({}, client=client) == "No threats found matching the given filters."

    def test_get_threat_details(self, client):
        client.get_threat.return_value = Threat(
            id="t1",
            threat_name="evil.exe",
            classification="Malware",
            threat_info=ThreatFileInfo(sha256="f" * 64, file_path="/tmp/evil"),
        )

        text = tools_threats.get_threat({"threatId": "t1"}, client=client)

        assert "Threat t1: evil.exe" in text
        assert f"SHA256: {'f' * 64}" in text
        assert "File: /tmp/evil" in text

    def test_get_threat_not_found(self, client):
        client.get_threat.return_value = None

        assert tools_threats.get_threat({"threatId": "t9"}, client=client) == "Threat t9 not found."

    def test_mitigate_threat(self, client):
        client.mitigate_threat.return_value = 1

        text = tools_threats.mitigate_threat({"threatId": "t1", "action": "quarantine"}, client=client)

        client.mitigate_threat.assert_called_once_with("t1", MitigationAction.QUARANTINE)
        assert "Mitigation 'quarantine' initiated for threat t1" in text

    def test_mitigate_threat_invalid_action(self, client):
        with pytest.raises(ValidationError):
            tools_threats.mitigate_threat({"threatId": "t1", "action": "nuke"}, client=client)
        client.mitigate_threat.assert_not_called()

    def test_missing_client(self):
        with pytest.raises(IntegrationError):
            tools_threats.list_threats({})


class TestAgentTools:
    def test_list_agents(self, client):
        client.list_agents.return_value = Page(
            items=[Agent(id="a1", computer_name="host-1", os_name="Windows 11", is_active=True, infected=True)],
        )

        text = tools_agents.list_agents({"isInfected": True, "osTypes": ["windows"]}, client=client)

        filters = client.list_agents.call_args[0][0]
        assert filters.is_infected is True
        assert filters.os_types == ["windows"]
        assert "host-1 | Windows 11 | active" in text
        assert "INFECTED" in text

    def test_get_agent(self, client):
        client.get_agent.return_value = Agent(
            id="a1",
            computer_name="host-1",
            network_interfaces=[NetworkInterface(name="eth0", inet=["10.0.0.5", "10.0.0.6"])],
        )

        text = tools_agents.get_agent({"agentId": "a1"}, client=client)

        assert "Agent a1: host-1" in text
        assert "Internal IPs: 10.0.0.5, 10.0.0.6" in text

    def test_isolate_agent(self, client):
        client.isolate_agent.return_value = 1

        text = tools_agents.isolate_agent({"agentId": "a1"}, client=client)

        client.isolate_agent.assert_called_once_with("a1")
        assert "Network isolation initiated for agent a1" in text

    def test_reconnect_agent_zero_affected(self, client):
        client.reconnect_agent.return_value = 0

        text = tools_agents.reconnect_agent({"agentId": "a1"}, client=client)

        assert "affected 0 agents" in text

    def test_agent_id_required(self, client):
        with pytest.raises(ValidationError):
            tools_agents.get_agent({"agentId": ""}, client=client)
