"""
Dataclass base for the DTOs in ``sentinel_mcp.api``.

Threats, agents, Deep Visibility requests and search outcomes are all plain
dataclasses. Tool arguments validated by pydantic are turned into DTOs with
``from_dict(model.model_dump())``, so the DTO field names follow the
snake_case names of the argument models rather than the platform's camelCase.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Type, TypeVar


T_BaseDTO = TypeVar("T_BaseDTO", bound="BaseDTO")


@dataclass
class BaseDTO:
    """
    Mixin giving every DTO ``to_dict`` and a lenient ``from_dict``.
    """

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls: Type[T_BaseDTO], data: Dict[str, Any]) -> T_BaseDTO:
        """
        Build the DTO from ``data``, dropping keys that are not fields.

        Argument models carry fields (limit defaults, paging) that not every
        DTO models.
        """
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
