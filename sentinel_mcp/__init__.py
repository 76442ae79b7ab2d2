"""
SentinelOne MCP server.

Exposes SentinelOne threat, agent and Deep Visibility operations as
Model Context Protocol tools.
"""

__version__ = "1.0.0"
