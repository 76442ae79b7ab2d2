"""
LLM-callable tools for SentinelOne threats.

These functions validate tool arguments, call the ``EDRClient`` interface
and render the result as text for the LLM client.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..api.edr import EDRClient, Threat, ThreatFilter
from ..core.errors import IntegrationError
from .formatting import format_time_ago, truncate_path
from .schemas import ListThreatsArgs, MitigateThreatArgs, ThreatIdArgs, parse_args


def _summarize_threat(threat: Threat) -> str:
    return (
        f"• {threat.threat_name or 'Unknown'} | {threat.agent_computer_name or 'Unknown'} | "
        f"{threat.classification or 'N/A'} | {threat.mitigation_status or 'N/A'} | "
        f"{format_time_ago(threat.created_at)} | id: {threat.id}"
    )


def _describe_threat(threat: Threat) -> str:
    lines = [
        f"Threat {threat.id}: {threat.threat_name or 'Unknown'}",
        f"Endpoint: {threat.agent_computer_name or 'Unknown'} ({threat.agent_os_type or 'n/a'}, agent {threat.agent_id or 'n/a'})",
        f"Classification: {threat.classification or 'N/A'} (source: {threat.classification_source or 'N/A'}, confidence: {threat.confidence_level or 'N/A'})",
        f"Mitigation status: {threat.mitigation_status or 'N/A'}",
        f"Created: {threat.created_at or 'unknown'} ({format_time_ago(threat.created_at)})",
        f"Initiated by: {threat.initiated_by_description or threat.initiated_by or 'N/A'}",
    ]
    file_path = threat.file_path or (threat.threat_info.file_path if threat.threat_info else None)
    if file_path:
        lines.append(f"File: {truncate_path(file_path, 120)}")
    if threat.threat_info:
        info = threat.threat_info
        for label, value in (("SHA256", info.sha256), ("SHA1", info.sha1), ("MD5", info.md5)):
            if value:
                lines.append(f"{label}: {value}")
    elif threat.file_content_hash:
        lines.append(f"Hash: {threat.file_content_hash}")
    if threat.storyline_id:
        lines.append(f"Storyline: {threat.storyline_id}")
    if threat.description:
        lines.append(f"Description: {threat.description}")
    return "\n".join(lines)


def list_threats(
    args: Optional[Dict[str, Any]] = None,
    client: EDRClient = None,  # type: ignore
) -> str:
    """
    List threats with optional filters.

    Tool schema:
    - name: s1_list_threats
    - parameters: limit, cursor, siteIds, groupIds, resolved,
      mitigationStatuses, classifications, analystVerdicts, computerName,
      threatName (all optional)

    Raises:
        ValidationError: If the arguments are invalid.
        IntegrationError: If the request fails.
    """
    if client is None:
        raise IntegrationError("SentinelOne client not provided")

    params = parse_args(ListThreatsArgs, args)
    page = client.list_threats(ThreatFilter.from_dict(params.model_dump()))

    if not page.items:
        return "No threats found matching the given filters."

    total = f" of {page.total_items}" if page.total_items is not None else ""
    header = f"Threats ({len(page.items)}{total}):\n\n"
    body = "\n".join(_summarize_threat(t) for t in page.items)
    footer = f"\n\n[More results - use cursor: {page.next_cursor}]" if page.next_cursor else ""
    return header + body + footer


def get_threat(
    args: Optional[Dict[str, Any]] = None,
    client: EDRClient = None,  # type: ignore
) -> str:
    """
    Get a single threat by ID.

    Tool schema:
    - name: s1_get_threat
    - parameters:
      - threatId (str, required)
    """
    if client is None:
        raise IntegrationError("SentinelOne client not provided")

    params = parse_args(ThreatIdArgs, args)
    threat = client.get_threat(params.threat_id)
    if threat is None:
        return f"Threat {params.threat_id} not found."
    return _describe_threat(threat)


def mitigate_threat(
    args: Optional[Dict[str, Any]] = None,
    client: EDRClient = None,  # type: ignore
) -> str:
    """
    Run a mitigation action against a threat.

    Tool schema:
    - name: s1_mitigate_threat
    - parameters:
      - threatId (str, required)
      - action (str, required): kill, quarantine, remediate, rollback-remediation
    """
    if client is None:
        raise IntegrationError("SentinelOne client not provided")

    params = parse_args(MitigateThreatArgs, args)
    affected = client.mitigate_threat(params.threat_id, params.action)
    if affected == 0:
        return (
            f"Mitigation '{params.action.value}' affected 0 threats. "
            f"Check that threat {params.threat_id} exists and the action applies to it."
        )
    return f"Mitigation '{params.action.value}' initiated for threat {params.threat_id} ({affected} affected)."
