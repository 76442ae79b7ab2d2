"""
MCP (Model Context Protocol) server for SentinelOne.

This package contains:
- mcp_server.py: MCP server implementation that exposes SentinelOne operations as tools
- watchdog.py: exits the server when the launching client process goes away
"""

from .mcp_server import SentinelOneMCPServer, configure_mcp_logging
from .watchdog import ParentWatchdog

__all__ = ["SentinelOneMCPServer", "configure_mcp_logging", "ParentWatchdog"]
