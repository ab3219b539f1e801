"""Caller identity verification.

Callers authenticate with a bearer token issued by the application's own
identity provider (not John Deere). The verifier resolves that token to a
user id by calling the provider's user endpoint, e.g. Supabase's
``/auth/v1/user``. It serves both the HTTP proxy routes and FastMCP's
HTTP auth.
"""

from __future__ import annotations

import httpx
import msgspec
from fastmcp.server.auth import AccessToken, TokenVerifier

from ..config import DeereConfig
from ..logging_config import get_logger, token_preview

logger = get_logger("oauth.identity")


class IdentityUser(msgspec.Struct):
    id: str
    email: str | None = None


class IdentityVerifier(TokenVerifier):
    """TokenVerifier backed by the identity provider's user endpoint.

    Returns None for missing or rejected tokens, so unauthenticated calls
    are refused before any proxy logic runs.
    """

    def __init__(
        self,
        config: DeereConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self._user_url = config.identity_user_url
        self._api_key = config.identity_api_key
        self._timeout = config.http_timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._http_client is None:
            logger.debug("Creating async HTTP client for identity verification")
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def verify_token(self, token: str) -> AccessToken | None:
        """Resolve a caller bearer token to an AccessToken.

        Args:
            token: Bearer token from the Authorization header

        Returns:
            AccessToken with ``user_id`` claim, or None if not valid
        """
        if not token or not token.strip():
            logger.debug("No caller token provided")
            return None

        if not self._user_url:
            logger.error("IDENTITY_USER_URL is not configured; rejecting caller")
            return None

        headers = {"Authorization": f"Bearer {token}"}
        if self._api_key:
            headers["apikey"] = self._api_key

        client = await self._get_client()
        try:
            response = await client.get(self._user_url, headers=headers)
            if response.status_code != 200:
                logger.warning(
                    "Caller token rejected: status=%d, token=%s",
                    response.status_code,
                    token_preview(token),
                )
                return None
            user = msgspec.json.decode(response.content, type=IdentityUser)
        except (httpx.HTTPError, msgspec.DecodeError) as e:
            logger.error("Identity verification error: %s", e)
            return None

        logger.debug("Caller verified: user_id=%s", user.id)
        return AccessToken(
            token=token,
            client_id=user.id,
            scopes=[],
            expires_at=None,
            claims={"user_id": user.id, "email": user.email},
        )

    async def close(self) -> None:
        """Close the async HTTP client if this verifier created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
