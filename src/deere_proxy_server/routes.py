"""HTTP entry points for the auth and data proxies.

Both endpoints take an ``action`` query parameter, require a caller
bearer token, answer CORS preflight, and return JSON. State-changing
actions are POST only. Every failure is
serialized as ``{"error": message}`` with the most specific status code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import msgspec
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from .errors import (
    AuthenticationError,
    DeereProxyError,
    MethodNotAllowed,
    ValidationError,
)
from .logging_config import get_logger
from .router import AUTH_ACTIONS, DATA_ACTIONS, POST_ACTIONS, ActionRouter

if TYPE_CHECKING:
    from fastmcp import FastMCP
    from fastmcp.server.auth import TokenVerifier

logger = get_logger("routes")

AUTH_PATH = "/functions/v1/john-deere-auth"
DATA_PATH = "/functions/v1/john-deere-api"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Client-Info, Apikey",
}


def json_response(payload: Any, status_code: int = 200) -> Response:
    return Response(
        content=msgspec.json.encode(payload),
        status_code=status_code,
        media_type="application/json",
        headers=CORS_HEADERS,
    )


def error_response(error: DeereProxyError) -> Response:
    return json_response(error.to_dict(), error.status_code)


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def _read_body(request: Request) -> dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = msgspec.json.decode(raw)
    except msgspec.DecodeError as e:
        raise ValidationError("Invalid JSON body") from e
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object")
    return body


class ProxyEndpoint:
    """Starlette endpoint serving one set of actions."""

    def __init__(
        self,
        router: ActionRouter,
        verifier: "TokenVerifier",
        actions: frozenset[str],
    ) -> None:
        self._router = router
        self._verifier = verifier
        self._actions = actions

    async def _authenticate(self, request: Request) -> str:
        token = _bearer_token(request)
        if token is None:
            raise AuthenticationError("No authorization header")
        access_token = await self._verifier.verify_token(token)
        if access_token is None:
            raise AuthenticationError("Invalid user token")
        return access_token.claims["user_id"]

    async def handle(self, request: Request) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)

        action = request.query_params.get("action")
        try:
            user_id = await self._authenticate(request)
            if action in POST_ACTIONS and request.method != "POST":
                raise MethodNotAllowed(action, request.method)
            body = await _read_body(request) if request.method == "POST" else {}
            result = await self._router.handle(
                user_id, action, body, allowed=self._actions
            )
        except DeereProxyError as e:
            if e.status_code >= 500:
                logger.error("Action %s failed: %s", action, e.message)
            return error_response(e)
        except Exception as e:
            logger.exception("Unexpected error handling action %s", action)
            return json_response({"error": str(e)}, 500)

        return json_response(result)


ROUTE_METHODS = ["GET", "POST", "OPTIONS"]


def proxy_routes(router: ActionRouter, verifier: "TokenVerifier") -> list[Route]:
    """Build the auth and data proxy routes."""
    return [
        Route(
            AUTH_PATH,
            ProxyEndpoint(router, verifier, AUTH_ACTIONS).handle,
            methods=ROUTE_METHODS,
            name="john-deere-auth",
        ),
        Route(
            DATA_PATH,
            ProxyEndpoint(router, verifier, DATA_ACTIONS).handle,
            methods=ROUTE_METHODS,
            name="john-deere-api",
        ),
    ]


def register_proxy_routes(
    mcp: "FastMCP", router: ActionRouter, verifier: "TokenVerifier"
) -> None:
    """Mount the proxy routes on the FastMCP HTTP app."""
    for route in proxy_routes(router, verifier):
        mcp.custom_route(route.path, methods=ROUTE_METHODS, name=route.name)(
            route.endpoint
        )
