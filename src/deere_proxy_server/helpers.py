"""Helpers shared by the MCP tools.

Usage:
    from .helpers import run_action

    @mcp.tool()
    async def deere_list_fields() -> dict[str, Any]:
        return await run_action("fields")
"""

from __future__ import annotations

from typing import Any

import msgspec
from fastmcp.server.dependencies import get_access_token

from .context import get_router
from .errors import AuthenticationError
from .logging_config import get_logger

logger = get_logger("helpers")


def get_user_id() -> str:
    """Get the verified caller identity of the current MCP request.

    Raises:
        AuthenticationError: If the request carries no verified identity
    """
    access_token = get_access_token()
    user_id = access_token.claims.get("user_id") if access_token else None
    if not user_id:
        logger.error("Tool called without authentication")
        raise AuthenticationError(
            "Authentication required. Sign in before using John Deere tools."
        )
    return user_id


async def run_action(action: str, body: dict[str, Any] | None = None) -> Any:
    """Run a router action for the caller and return plain JSON data.

    Router failures propagate as DeereProxyError; FastMCP reports them
    to the client as tool errors.
    """
    user_id = get_user_id()
    result = await get_router().handle(user_id, action, body)
    return msgspec.to_builtins(result)
