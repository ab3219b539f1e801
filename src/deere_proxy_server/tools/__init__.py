"""MCP tools for Deere Proxy Server."""

from .farm import register_farm_tools

__all__ = ["register_farm_tools"]
