"""
Text formatting helpers shared by the tool modules.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed); None if unparseable."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_time_ago(value: Any, now: Optional[datetime] = None) -> str:
    """
    Render a timestamp relative to ``now``, e.g. ``"5m ago"`` or ``"3d ago"``.
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        return "unknown"
    now = now or datetime.now(timezone.utc)
    seconds = int((now - parsed).total_seconds())
    if seconds < 0:
        return "just now"
    if seconds < 60:
        return f"{seconds}s ago"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def truncate_path(path: Optional[str], max_length: int = 60) -> str:
    """Keep the tail of a long path, which carries the file name."""
    if not path:
        return ""
    if len(path) <= max_length:
        return path
    return "..." + path[-(max_length - 3):]


def truncate(text: Optional[str], max_length: int) -> str:
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
