"""OAuth module for Deere Proxy Server.

This module holds everything that deals with tokens:

- **Caller identity**: callers present a bearer token from the app's own
  identity provider; IdentityVerifier resolves it to a user id.
- **John Deere credentials**: one stored token set per user, created by
  code exchange and kept valid by TokenManager.

Components:
    - IdentityVerifier: Resolves caller bearer tokens (FastMCP TokenVerifier)
    - CredentialStore: Per-user credential repository over AsyncKeyValue
    - create_storage: Factory for the key-value backend
    - TokenManager: Code exchange, pre-emptive refresh, forced refresh
    - build_authorization_url / generate_state: Start account linking
"""

from .authorize import build_authorization_url, generate_state
from .identity import IdentityVerifier
from .storage import CredentialStore, create_storage
from .tokens import TokenManager

__all__ = [
    # Caller identity
    "IdentityVerifier",
    # Storage
    "CredentialStore",
    "create_storage",
    # Token lifecycle
    "TokenManager",
    # Account linking
    "build_authorization_url",
    "generate_state",
]
