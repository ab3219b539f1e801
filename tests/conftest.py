"""Shared fixtures: configuration, in-memory credential store, mock upstream."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Callable
from urllib.parse import parse_qs

import httpx
import pytest
from key_value.aio.stores.memory import MemoryStore

from deere_proxy_server.config import DeereConfig
from deere_proxy_server.models import Credential, utcnow
from deere_proxy_server.oauth.storage import CredentialStore

API_BASE = "https://api.test/platform"
TOKEN_URL = "https://signin.test/oauth2/v1/token"
IDENTITY_URL = "https://identity.test/auth/v1/user"


class MockUpstream:
    """httpx MockTransport handler with per-URL canned responses."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}

    def add(
        self,
        method: str,
        url: str,
        status: int = 200,
        json: Any = None,
        text: str | None = None,
    ) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if text is not None:
                return httpx.Response(status, text=text)
            return httpx.Response(status, json=json if json is not None else {})

        self._routes[(method, url)] = respond

    def add_handler(
        self,
        method: str,
        url: str,
        handler: Callable[[httpx.Request], httpx.Response],
    ) -> None:
        self._routes[(method, url)] = handler

    def api(self, path: str, **kwargs: Any) -> None:
        self.add("GET", f"{API_BASE}{path}", **kwargs)

    def token_endpoint(self, status: int = 200, **payload: Any) -> None:
        body = {
            "access_token": "new-access",
            "refresh_token": "new-refresh",
            "expires_in": 43200,
            "token_type": "Bearer",
            "scope": "ag1 org1 offline_access",
        }
        body.update(payload)
        if status >= 400:
            self.add("POST", TOKEN_URL, status=status, text='{"error":"invalid_grant"}')
        else:
            self.add("POST", TOKEN_URL, status=status, json=body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self._routes.get((request.method, str(request.url)))
        if route is None:
            return httpx.Response(404, json={"error": "not mocked"})
        return route(request)

    def calls(self, method: str, url_prefix: str) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and str(r.url).startswith(url_prefix)
        ]

    def token_calls(self) -> list[dict[str, list[str]]]:
        return [parse_qs(r.content.decode()) for r in self.calls("POST", TOKEN_URL)]


def make_credential(
    user_id: str = "user-1",
    expires_in: timedelta = timedelta(hours=1),
    **overrides: Any,
) -> Credential:
    values: dict[str, Any] = {
        "user_id": user_id,
        "access_token": "stored-access",
        "refresh_token": "stored-refresh",
        "expires_at": utcnow() + expires_in,
    }
    values.update(overrides)
    return Credential(**values)


@pytest.fixture
def config() -> DeereConfig:
    return DeereConfig(
        client_id="test-client-id",
        client_secret="test-client-secret",
        token_url=TOKEN_URL,
        api_base=API_BASE,
        identity_user_url=IDENTITY_URL,
        identity_api_key="anon-key",
        http_timeout=5.0,
        max_concurrent_requests=2,
    )


@pytest.fixture
def upstream() -> MockUpstream:
    return MockUpstream()


@pytest.fixture
def http_client(upstream: MockUpstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))


@pytest.fixture
def store() -> CredentialStore:
    return CredentialStore(MemoryStore())
