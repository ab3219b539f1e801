"""Deere Proxy Server - John Deere Operations Center proxy and MCP server."""

__version__ = "0.1.0"
