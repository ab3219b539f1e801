"""Configuration for Deere Proxy Server."""

from __future__ import annotations

import os

import msgspec

from .logging_config import get_logger

logger = get_logger("config")

DEFAULT_AUTHORIZE_URL = (
    "https://signin.johndeere.com/oauth2/aus78tnlaysMraFhC1t7/v1/authorize"
)
DEFAULT_TOKEN_URL = "https://signin.johndeere.com/oauth2/aus78tnlaysMraFhC1t7/v1/token"
DEFAULT_API_BASE = "https://sandboxapi.deere.com/platform"
DEFAULT_SCOPES = "ag1 ag2 ag3 org1 org2 work1 work2 offline_access"


class DeereConfig(msgspec.Struct, kw_only=True, frozen=True):
    """Settings shared by the token manager, upstream client and server."""

    client_id: str = ""
    client_secret: str = ""
    authorize_url: str = DEFAULT_AUTHORIZE_URL
    token_url: str = DEFAULT_TOKEN_URL
    api_base: str = DEFAULT_API_BASE
    scopes: str = DEFAULT_SCOPES
    # Upstream calls
    http_timeout: float = 30.0
    max_concurrent_requests: int = 8
    refresh_buffer_seconds: int = 300
    max_pages: int = 100
    # Caller identity provider
    identity_user_url: str = ""
    identity_api_key: str = ""

    def __post_init__(self) -> None:
        if self.max_concurrent_requests < 1:
            raise ValueError("max_concurrent_requests must be at least 1")
        if self.max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        if self.http_timeout <= 0:
            raise ValueError("http_timeout must be positive")

    @classmethod
    def from_env(cls) -> "DeereConfig":
        """Load configuration from environment variables.

        Environment variables:
            JOHN_DEERE_CLIENT_ID: OAuth client ID
            JOHN_DEERE_CLIENT_SECRET: OAuth client secret
            JOHN_DEERE_AUTHORIZE_URL: Authorization endpoint
            JOHN_DEERE_TOKEN_URL: Token endpoint
            JOHN_DEERE_API_BASE: Platform API base URL (sandbox by default)
            JOHN_DEERE_SCOPES: Space-separated scopes
            HTTP_TIMEOUT: Upstream request timeout in seconds (default: 30)
            MAX_CONCURRENT_REQUESTS: Per-aggregation fan-out limit (default: 8)
            TOKEN_REFRESH_BUFFER_SECONDS: Refresh ahead of expiry (default: 300)
            MAX_PAGES: Page limit when following nextPage links (default: 100)
            IDENTITY_USER_URL: Endpoint that resolves a caller bearer token
            IDENTITY_API_KEY: API key sent to the identity endpoint
        """
        config = cls(
            client_id=os.getenv("JOHN_DEERE_CLIENT_ID", ""),
            client_secret=os.getenv("JOHN_DEERE_CLIENT_SECRET", ""),
            authorize_url=os.getenv("JOHN_DEERE_AUTHORIZE_URL", DEFAULT_AUTHORIZE_URL),
            token_url=os.getenv("JOHN_DEERE_TOKEN_URL", DEFAULT_TOKEN_URL),
            api_base=os.getenv("JOHN_DEERE_API_BASE", DEFAULT_API_BASE).rstrip("/"),
            scopes=os.getenv("JOHN_DEERE_SCOPES", DEFAULT_SCOPES),
            http_timeout=float(os.getenv("HTTP_TIMEOUT") or "30"),
            max_concurrent_requests=int(os.getenv("MAX_CONCURRENT_REQUESTS") or "8"),
            refresh_buffer_seconds=int(
                os.getenv("TOKEN_REFRESH_BUFFER_SECONDS") or "300"
            ),
            max_pages=int(os.getenv("MAX_PAGES") or "100"),
            identity_user_url=os.getenv("IDENTITY_USER_URL", ""),
            identity_api_key=os.getenv("IDENTITY_API_KEY", ""),
        )

        if not config.client_id:
            logger.warning("JOHN_DEERE_CLIENT_ID is not set")

        logger.debug(
            "Loaded config: api_base=%s, token_url=%s, timeout=%.1f, fan_out=%d",
            config.api_base,
            config.token_url,
            config.http_timeout,
            config.max_concurrent_requests,
        )
        return config
