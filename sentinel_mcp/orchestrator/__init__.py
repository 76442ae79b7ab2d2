"""
LLM-callable tools for the SentinelOne MCP server.

This package contains:
- ``schemas.py``: pydantic models validating tool arguments.
- ``formatting.py``: text helpers (time-ago, path truncation).
- ``tools_threats.py``: threat listing, lookup and mitigation tools.
- ``tools_agents.py``: agent listing, lookup, isolation and reconnect tools.
- ``tools_dv.py``: Deep Visibility query, events and hash hunting tools.
"""
