"""Module-level access to the application-wide ActionRouter.

MCP tools run inside FastMCP's call machinery and cannot receive the
router as a parameter. The server stores it here once at startup.

Note: A plain module-level variable is used instead of ContextVar because
the router is an application-wide singleton, not request-scoped data.

Usage:
    # In server.py:
    from .context import set_router
    set_router(router)

    # In tools or helpers:
    from .context import get_router
    router = get_router()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .router import ActionRouter

_router: "ActionRouter | None" = None


def set_router(router: "ActionRouter | None") -> None:
    """Set (or clear, with None) the router for global access."""
    global _router
    _router = router


def get_router() -> "ActionRouter":
    """Get the router.

    Raises:
        RuntimeError: If the router has not been initialized
    """
    if _router is None:
        raise RuntimeError("Action router not initialized")
    return _router
