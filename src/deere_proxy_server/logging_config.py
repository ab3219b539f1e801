"""Logging setup for Deere Proxy Server.

All loggers live under the ``deere_proxy_server`` namespace and write to
stderr, which keeps stdout free for the MCP stdio transport.

Usage:
    from .logging_config import get_logger

    logger = get_logger("oauth.tokens")
"""

from __future__ import annotations

import logging
import os
import sys

ROOT_LOGGER_NAME = "deere_proxy_server"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure the package logger.

    Args:
        level: Log level name. Defaults to the LOG_LEVEL environment
            variable, then INFO.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the package namespace."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def token_preview(token: str | None, length: int = 8) -> str:
    """Shorten a secret for log output."""
    if not token:
        return "(none)"
    if len(token) <= length:
        return "****"
    return token[:length] + "..."
