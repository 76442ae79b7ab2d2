"""
Vendor integrations for the SentinelOne MCP server.
"""
