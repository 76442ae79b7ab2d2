"""
EDR DTOs for SentinelOne threats and agents.

This module defines the DTOs, the paginated envelope and the ``EDRClient``
interface that tool code uses for threat and agent lookup and response
actions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, List, Optional, Protocol, TypeVar

from ..core.dto import BaseDTO


T = TypeVar("T")


class MitigationAction(str, Enum):
    """
    Mitigation actions accepted by ``/threats/mitigate/{action}``.
    """

    KILL = "kill"
    QUARANTINE = "quarantine"
    REMEDIATE = "remediate"
    ROLLBACK_REMEDIATION = "rollback-remediation"


@dataclass
class Page(Generic[T]):
    """
    One page of a cursor-paginated listing.
    """

    items: List[T]
    next_cursor: Optional[str] = None
    total_items: Optional[int] = None


@dataclass
class ThreatFileInfo(BaseDTO):
    sha1: Optional[str] = None
    sha256: Optional[str] = None
    md5: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None


@dataclass
class Threat(BaseDTO):
    """
    Threat as reported by the management console.
    """

    id: str
    agent_id: str = ""
    agent_computer_name: str = ""
    agent_os_type: str = ""
    classification: str = ""
    classification_source: str = ""
    confidence_level: str = ""
    created_at: str = ""
    description: str = ""
    file_content_hash: str = ""
    file_path: str = ""
    initiated_by: str = ""
    initiated_by_description: str = ""
    mitigation_status: str = ""
    threat_name: str = ""
    storyline_id: str = ""
    threat_info: Optional[ThreatFileInfo] = None


@dataclass
class NetworkInterface(BaseDTO):
    name: str = ""
    physical: str = ""
    inet: List[str] = field(default_factory=list)


@dataclass
class Agent(BaseDTO):
    """
    Endpoint agent (host) representation.
    """

    id: str
    uuid: str = ""
    computer_name: str = ""
    domain: str = ""
    site_name: str = ""
    group_name: str = ""
    os_name: str = ""
    os_type: str = ""
    agent_version: str = ""
    is_active: bool = False
    is_decommissioned: bool = False
    infected: bool = False
    network_status: str = ""
    last_active_date: str = ""
    external_ip: str = ""
    network_interfaces: List[NetworkInterface] = field(default_factory=list)


@dataclass
class ThreatFilter(BaseDTO):
    """
    Optional filters for ``list_threats``. Empty values are not sent.
    """

    limit: Optional[int] = None
    cursor: Optional[str] = None
    site_ids: Optional[List[str]] = None
    group_ids: Optional[List[str]] = None
    resolved: Optional[bool] = None
    mitigation_statuses: Optional[List[str]] = None
    classifications: Optional[List[str]] = None
    analyst_verdicts: Optional[List[str]] = None
    computer_name_contains: Optional[str] = None
    threat_name_contains: Optional[str] = None


@dataclass
class AgentFilter(BaseDTO):
    """
    Optional filters for ``list_agents``. Empty values are not sent.
    """

    limit: Optional[int] = None
    cursor: Optional[str] = None
    site_ids: Optional[List[str]] = None
    group_ids: Optional[List[str]] = None
    computer_name_contains: Optional[str] = None
    os_types: Optional[List[str]] = None
    is_active: Optional[bool] = None
    is_infected: Optional[bool] = None
    network_statuses: Optional[List[str]] = None


class EDRClient(Protocol):
    """
    Interface for the SentinelOne threat and agent operations.
    """

    def list_threats(self, filters: Optional[ThreatFilter] = None) -> Page[Threat]:
        ...

    def get_threat(self, threat_id: str) -> Optional[Threat]:
        ...

    def mitigate_threat(self, threat_id: str, action: MitigationAction) -> int:
        ...

    def list_agents(self, filters: Optional[AgentFilter] = None) -> Page[Agent]:
        ...

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        ...

    def isolate_agent(self, agent_id: str) -> int:
        ...

    def reconnect_agent(self, agent_id: str) -> int:
        ...
