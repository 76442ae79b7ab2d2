"""
LLM-callable tools for SentinelOne agents.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..api.edr import Agent, AgentFilter, EDRClient
from ..core.errors import IntegrationError
from .formatting import format_time_ago
from .schemas import AgentIdArgs, ListAgentsArgs, parse_args


def _agent_ips(agent: Agent) -> str:
    ips = [ip for iface in agent.network_interfaces for ip in iface.inet]
    return ", ".join(ips) if ips else "n/a"


def _summarize_agent(agent: Agent) -> str:
    state = "active" if agent.is_active else "inactive"
    infected = " | INFECTED" if agent.infected else ""
    return (
        f"• {agent.computer_name or 'Unknown'} | {agent.os_name or agent.os_type or 'N/A'} | "
        f"{state} | network: {agent.network_status or 'N/A'}{infected} | "
        f"last seen {format_time_ago(agent.last_active_date)} | id: {agent.id}"
    )


def _describe_agent(agent: Agent) -> str:
    lines = [
        f"Agent {agent.id}: {agent.computer_name or 'Unknown'}",
        f"OS: {agent.os_name or 'N/A'} ({agent.os_type or 'n/a'})",
        f"Agent version: {agent.agent_version or 'N/A'}",
        f"Site / group: {agent.site_name or 'N/A'} / {agent.group_name or 'N/A'}",
        f"Domain: {agent.domain or 'N/A'}",
        f"Active: {'yes' if agent.is_active else 'no'} | Infected: {'yes' if agent.infected else 'no'}"
        f" | Decommissioned: {'yes' if agent.is_decommissioned else 'no'}",
        f"Network status: {agent.network_status or 'N/A'}",
        f"Last active: {agent.last_active_date or 'unknown'} ({format_time_ago(agent.last_active_date)})",
        f"External IP: {agent.external_ip or 'n/a'}",
        f"Internal IPs: {_agent_ips(agent)}",
    ]
    if agent.uuid:
        lines.append(f"UUID: {agent.uuid}")
    return "\n".join(lines)


def list_agents(
    args: Optional[Dict[str, Any]] = None,
    client: EDRClient = None,  # type: ignore
) -> str:
    """
    List agents with optional filters.

    Tool schema:
    - name: s1_list_agents
    - parameters: limit, cursor, siteIds, groupIds, computerName, osTypes,
      isActive, isInfected, networkStatuses (all optional)
    """
    if client is None:
        raise IntegrationError("SentinelOne client not provided")

    params = parse_args(ListAgentsArgs, args)
    page = client.list_agents(AgentFilter.from_dict(params.model_dump()))

    if not page.items:
        return "No agents found matching the given filters."

    total = f" of {page.total_items}" if page.total_items is not None else ""
    header = f"Agents ({len(page.items)}{total}):\n\n"
    body = "\n".join(_summarize_agent(a) for a in page.items)
    footer = f"\n\n[More results - use cursor: {page.next_cursor}]" if page.next_cursor else ""
    return header + body + footer


def get_agent(
    args: Optional[Dict[str, Any]] = None,
    client: EDRClient = None,  # type: ignore
) -> str:
    """
    Get a single agent by ID.

    Tool schema:
    - name: s1_get_agent
    - parameters:
      - agentId (str, required)
    """
    if client is None:
        raise IntegrationError("SentinelOne client not provided")

    params = parse_args(AgentIdArgs, args)
    agent = client.get_agent(params.agent_id)
    if agent is None:
        return f"Agent {params.agent_id} not found."
    return _describe_agent(agent)


def isolate_agent(
    args: Optional[Dict[str, Any]] = None,
    client: EDRClient = None,  # type: ignore
) -> str:
    """
    Network-isolate an agent. The agent keeps talking to the console.

    Tool schema:
    - name: s1_isolate_agent
    - parameters:
      - agentId (str, required)
    """
    if client is None:
        raise IntegrationError("SentinelOne client not provided")

    params = parse_args(AgentIdArgs, args)
    affected = client.isolate_agent(params.agent_id)
    if affected == 0:
        return f"Isolation affected 0 agents. Check that agent {params.agent_id} exists."
    return f"Network isolation initiated for agent {params.agent_id} ({affected} affected)."


def reconnect_agent(
    args: Optional[Dict[str, Any]] = None,
    client: EDRClient = None,  # type: ignore
) -> str:
    """
    Remove network isolation from an agent.

    Tool schema:
    - name: s1_reconnect_agent
    - parameters:
      - agentId (str, required)
    """
    if client is None:
        raise IntegrationError("SentinelOne client not provided")

    params = parse_args(AgentIdArgs, args)
    affected = client.reconnect_agent(params.agent_id)
    if affected == 0:
        return f"Reconnect affected 0 agents. Check that agent {params.agent_id} exists."
    return f"Network reconnect initiated for agent {params.agent_id} ({affected} affected)."
