"""Authorization URL helpers for linking a John Deere account.

The browser is sent to the authorization endpoint, and the code it
returns is exchanged by the ``exchange`` action.
"""

from __future__ import annotations

import secrets

import httpx

from ..config import DeereConfig


def generate_state() -> str:
    """Generate an opaque anti-forgery ``state`` value.

    Returns:
        str: 43 URL-safe characters (32 random bytes)
    """
    return secrets.token_urlsafe(32)


def build_authorization_url(
    config: DeereConfig,
    redirect_uri: str,
    state: str,
) -> str:
    """Build the URL that starts the authorization code flow.

    Example:
        >>> url = build_authorization_url(config, "http://localhost:3000/auth/callback", "xyz")
        >>> url.startswith(config.authorize_url)
        True
    """
    url = httpx.URL(
        config.authorize_url,
        params={
            "client_id": config.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "scope": config.scopes,
            "state": state,
        },
    )
    return str(url)
