"""FastMCP server setup and lifecycle management for Deere Proxy Server."""

from __future__ import annotations

import asyncio
import os
import signal
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Annotated, AsyncIterator

import httpx
import msgspec
import typer
from dotenv import load_dotenv
from fastmcp import FastMCP

from .config import DeereConfig
from .context import set_router
from .logging_config import get_logger, setup_logging
from .oauth.authorize import build_authorization_url, generate_state
from .oauth.identity import IdentityVerifier
from .oauth.storage import CredentialStore, create_storage
from .router import ActionRouter
from .routes import AUTH_PATH, DATA_PATH, register_proxy_routes
from .tools import register_farm_tools

if TYPE_CHECKING:
    from key_value.aio.protocols.key_value import AsyncKeyValue

load_dotenv()
setup_logging()

logger = get_logger("server")


class AppContext(msgspec.Struct, kw_only=True):
    """Application context shared across requests."""

    router: ActionRouter
    config: DeereConfig


def _default_port() -> int:
    # Cloud platform standard: PORT first, then FASTMCP_PORT, then default
    return int(os.getenv("PORT") or os.getenv("FASTMCP_PORT") or "8000")


def _mask_secret(value: str | None) -> str:
    """Mask sensitive values for display."""
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "****"
    return value[:4] + "****" + value[-4:]


def _print_config(config: DeereConfig, transport: str, port: int) -> None:
    """Print server configuration at startup."""
    storage_type = os.getenv("OAUTH_STORAGE_TYPE", "memory").lower()

    sections: list[tuple[str, list[tuple[str, str]]]] = [
        (
            "Server",
            [
                ("Transport", transport),
                ("Port", str(port)),
                ("Log Level", os.getenv("LOG_LEVEL", "INFO")),
            ],
        ),
        (
            "John Deere",
            [
                ("API Base", config.api_base),
                ("Token URL", config.token_url),
                ("Client ID", config.client_id or "(not set)"),
                ("Client Secret", _mask_secret(config.client_secret)),
                ("Timeout", f"{config.http_timeout:g}s"),
                ("Fan-out Limit", str(config.max_concurrent_requests)),
            ],
        ),
        (
            "Storage",
            [
                ("Type", storage_type),
                (
                    "Encryption",
                    "enabled" if os.getenv("STORAGE_ENCRYPTION_KEY") else "disabled",
                ),
            ],
        ),
    ]

    if transport == "http":
        sections.append(
            (
                "Proxy",
                [
                    ("Auth Endpoint", AUTH_PATH),
                    ("Data Endpoint", DATA_PATH),
                    ("Identity URL", config.identity_user_url or "(not set)"),
                ],
            )
        )

    logger.info("")
    logger.info("=" * 55)
    logger.info("  Deere Proxy Server Configuration")
    logger.info("=" * 55)

    for section_name, items in sections:
        logger.info("")
        logger.info("  [%s]", section_name)
        for key, value in items:
            logger.info("    %-20s %s", key, value)

    logger.info("")
    logger.info("=" * 55)

    warnings: list[str] = []
    if not config.client_id or not config.client_secret:
        warnings.append("JOHN_DEERE_CLIENT_ID and JOHN_DEERE_CLIENT_SECRET are required")
    if transport == "http" and not config.identity_user_url:
        warnings.append("IDENTITY_USER_URL is required to authenticate callers")
    if storage_type == "redis" and not os.getenv("REDIS_URL"):
        warnings.append("REDIS_URL is required when OAUTH_STORAGE_TYPE=redis")

    for warning in warnings:
        logger.warning("  ! %s", warning)


def create_server(
    transport: str = "stdio",
    config: DeereConfig | None = None,
    storage: "AsyncKeyValue | None" = None,
) -> FastMCP:
    """Create and configure the FastMCP server.

    Args:
        transport: Transport mode ('stdio' or 'http')
        config: Settings (default: loaded from environment)
        storage: Key-value backend for credentials (default: create_storage())

    Returns:
        Configured FastMCP server instance
    """
    config = config or DeereConfig.from_env()
    http_client = httpx.AsyncClient(timeout=config.http_timeout)
    store = CredentialStore(storage or create_storage())
    router = ActionRouter.from_config(config, store, http_client)
    verifier = IdentityVerifier(config, http_client)

    set_router(router)

    @asynccontextmanager
    async def app_lifespan(mcp: FastMCP) -> AsyncIterator[AppContext]:
        logger.info("Starting Deere Proxy Server")
        try:
            yield AppContext(router=router, config=config)
        finally:
            logger.info("Shutting down Deere Proxy Server")
            await http_client.aclose()
            set_router(None)
            logger.info("Server shutdown complete")

    mcp = FastMCP(
        "Deere Proxy Server",
        lifespan=app_lifespan,
        auth=verifier if transport == "http" else None,
    )

    logger.debug("Registering farm tools")
    register_farm_tools(mcp)

    if transport == "http":
        logger.debug("Registering proxy routes")
        register_proxy_routes(mcp, router, verifier)

    logger.debug("Server creation complete")
    return mcp


async def run_server_async(transport: str, port: int) -> None:
    """Run the server with graceful shutdown support."""
    config = DeereConfig.from_env()
    _print_config(config, transport, port)
    server = create_server(transport, config)

    def handle_shutdown(sig: signal.Signals) -> None:
        logger.info("Received signal %s, initiating shutdown...", sig.name)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_shutdown, sig)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler for SIGTERM
            pass

    logger.info("Starting server with transport: %s", transport)

    try:
        if transport == "http":
            await server.run_async(transport="http", port=port)
        else:
            await server.run_async(transport="stdio")
    except asyncio.CancelledError:
        logger.info("Server task cancelled")


app = typer.Typer(
    name="deere-proxy-server",
    help="Deere Proxy Server - John Deere Operations Center proxy and MCP server.",
    add_completion=False,
)


@app.command()
def serve(
    transport: Annotated[
        str,
        typer.Option(
            "--transport",
            "-t",
            help="Transport mode: stdio, http",
        ),
    ] = "stdio",
    port: Annotated[
        int | None,
        typer.Option(
            "--port",
            "-p",
            help="Port for HTTP transport (default: from PORT env or 8000)",
        ),
    ] = None,
) -> None:
    """Run the proxy server."""
    if transport not in ("stdio", "http"):
        raise typer.BadParameter("transport must be 'stdio' or 'http'")

    try:
        asyncio.run(run_server_async(transport, port or _default_port()))
    except KeyboardInterrupt:
        logger.info("Server stopped by user")


@app.command("authorize-url")
def authorize_url(
    redirect_uri: Annotated[
        str,
        typer.Option("--redirect-uri", "-r", help="OAuth callback URL"),
    ],
    state: Annotated[
        str | None,
        typer.Option("--state", "-s", help="State value (default: random)"),
    ] = None,
) -> None:
    """Print the John Deere authorization URL that starts account linking."""
    config = DeereConfig.from_env()
    if not config.client_id:
        typer.echo("JOHN_DEERE_CLIENT_ID is not set", err=True)
        raise typer.Exit(code=1)
    typer.echo(build_authorization_url(config, redirect_uri, state or generate_state()))


if __name__ == "__main__":
    app()
