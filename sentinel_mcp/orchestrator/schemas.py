"""
Argument models for the MCP tools.

Tool arguments arrive as untyped JSON from the LLM client. They are
validated here before any request is made, so malformed input (for example
a truncated hash) never reaches the integration layer.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from ..api.edr import MitigationAction
from ..core.errors import ValidationError


_HEX_RE = re.compile(r"^[a-fA-F0-9]+$")


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ListThreatsArgs(ToolArgs):
    limit: int = Field(default=25, ge=1, le=1000)
    cursor: Optional[str] = None
    site_ids: Optional[List[str]] = Field(default=None, alias="siteIds")
    group_ids: Optional[List[str]] = Field(default=None, alias="groupIds")
    resolved: Optional[bool] = None
    mitigation_statuses: Optional[List[str]] = Field(default=None, alias="mitigationStatuses")
    classifications: Optional[List[str]] = None
    analyst_verdicts: Optional[List[str]] = Field(default=None, alias="analystVerdicts")
    computer_name_contains: Optional[str] = Field(default=None, alias="computerName")
    threat_name_contains: Optional[str] = Field(default=None, alias="threatName")


class ThreatIdArgs(ToolArgs):
    threat_id: str = Field(alias="threatId", min_length=1)


class MitigateThreatArgs(ThreatIdArgs):
    action: MitigationAction


class ListAgentsArgs(ToolArgs):
    limit: int = Field(default=25, ge=1, le=1000)
    cursor: Optional[str] = None
    site_ids: Optional[List[str]] = Field(default=None, alias="siteIds")
    group_ids: Optional[List[str]] = Field(default=None, alias="groupIds")
    computer_name_contains: Optional[str] = Field(default=None, alias="computerName")
    os_types: Optional[List[str]] = Field(default=None, alias="osTypes")
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    is_infected: Optional[bool] = Field(default=None, alias="isInfected")
    network_statuses: Optional[List[str]] = Field(default=None, alias="networkStatuses")


class AgentIdArgs(ToolArgs):
    agent_id: str = Field(alias="agentId", min_length=1)


class HashLookupArgs(ToolArgs):
    hash: str

    @field_validator("hash")
    @classmethod
    def check_hash(cls, value: str) -> str:
        value = value.strip()
        if len(value) not in (40, 64):
            raise ValueError(
                "Invalid hash format. Expected SHA1 (40 chars) or SHA256 (64 chars), "
                f"got {len(value)} chars"
            )
        if not _HEX_RE.match(value):
            raise ValueError("Invalid hash format. Hash must be hexadecimal characters only.")
        return value

    @property
    def hash_field(self) -> str:
        return "SHA256" if len(self.hash) == 64 else "SHA1"


class DVQueryArgs(ToolArgs):
    query: str = Field(min_length=1)
    from_date: Optional[datetime] = Field(default=None, alias="fromDate")
    to_date: Optional[datetime] = Field(default=None, alias="toDate")
    site_ids: Optional[List[str]] = Field(default=None, alias="siteIds")
    group_ids: Optional[List[str]] = Field(default=None, alias="groupIds")
    account_ids: Optional[List[str]] = Field(default=None, alias="accountIds")

    @field_validator("query")
    @classmethod
    def check_query(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query must not be blank")
        return value

    @field_validator("from_date", "to_date")
    @classmethod
    def to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # A timestamp without an offset is taken to be UTC.
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def check_range(self) -> "DVQueryArgs":
        if self.from_date and self.to_date and self.from_date > self.to_date:
            raise ValueError("fromDate must not be after toDate")
        return self


class DVGetEventsArgs(ToolArgs):
    query_id: str = Field(alias="queryId", min_length=1)
    limit: int = Field(default=50, ge=1, le=1000)
    cursor: Optional[str] = None


def parse_args(model: type, args: Optional[dict]):
    """
    Validate raw tool arguments against ``model``.

    Raises:
        ValidationError: With a short, client-facing message.
    """
    try:
        return model.model_validate(args or {})
    except PydanticValidationError as e:
        messages = []
        for err in e.errors():
            loc = ".".join(str(part) for part in err.get("loc", ()))
            msg = err.get("msg", "invalid value")
            if msg.startswith("Value error, "):
                msg = msg[len("Value error, "):]
            messages.append(f"{loc}: {msg}" if loc else msg)
        raise ValidationError("; ".join(messages)) from e
