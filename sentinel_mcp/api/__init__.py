"""
DTOs and interfaces for the SentinelOne MCP server.

This package defines:
- threat, agent and mitigation types (`edr.py`)
- Deep Visibility search job types and outcomes (`deep_visibility.py`)

Tool code depends on these modules and on the client interface, never on
the HTTP layer directly.
"""
