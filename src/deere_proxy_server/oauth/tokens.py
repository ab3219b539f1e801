"""John Deere token lifecycle.

TokenManager exchanges authorization codes, keeps stored credentials
valid by refreshing them ahead of expiry, and persists every rotation.

Refreshes for one user are serialized by an in-process lock: a request
that waited on the lock re-reads the credential and reuses the token the
first request stored. Separate processes can still race, and the last
write to the store wins.
"""

from __future__ import annotations

import asyncio
import weakref
from datetime import timedelta

import httpx
import msgspec

from ..config import DeereConfig
from ..errors import ExchangeFailed, NoConnection, RefreshFailed
from ..logging_config import get_logger, token_preview
from ..models import Credential, TokenResponse, utcnow
from .storage import CredentialStore

logger = get_logger("oauth.tokens")


class TokenManager:
    """Owns the token endpoint and the credential rotation rules."""

    def __init__(
        self,
        config: DeereConfig,
        store: CredentialStore,
        http_client: httpx.AsyncClient,
    ) -> None:
        self._config = config
        self._store = store
        self._http = http_client
        self._buffer = timedelta(seconds=config.refresh_buffer_seconds)
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def store(self) -> CredentialStore:
        return self._store

    def _lock(self, user_id: str) -> asyncio.Lock:
        # Entries vanish once no request holds or waits on the lock
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def _request_tokens(self, params: dict[str, str]) -> httpx.Response:
        form = {
            **params,
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
        }
        return await self._http.post(
            self._config.token_url,
            data=form,
            headers={"Accept": "application/json"},
        )

    async def exchange_code(
        self, user_id: str, code: str, redirect_uri: str
    ) -> Credential:
        """Trade an authorization code for tokens and store them.

        Any existing credential for the user is replaced in full, so a
        previous organization selection is cleared.

        Raises:
            ExchangeFailed: Token endpoint answered with a non-2xx status
        """
        response = await self._request_tokens(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            }
        )
        if not response.is_success:
            logger.error(
                "Code exchange failed: user_id=%s, status=%d",
                user_id,
                response.status_code,
            )
            raise ExchangeFailed(response.status_code, response.text)

        tokens = msgspec.json.decode(response.content, type=TokenResponse)
        now = utcnow()
        credential = Credential(
            user_id=user_id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at(now),
            updated_at=now,
        )
        await self._store.upsert(credential)
        logger.info(
            "Stored John Deere connection: user_id=%s, expires_at=%s",
            user_id,
            credential.expires_at.isoformat(),
        )
        return credential

    async def _refresh(self, credential: Credential) -> Credential:
        logger.info(
            "Refreshing access token: user_id=%s, refresh_token=%s",
            credential.user_id,
            token_preview(credential.refresh_token),
        )
        response = await self._request_tokens(
            {
                "grant_type": "refresh_token",
                "refresh_token": credential.refresh_token,
            }
        )
        if not response.is_success:
            logger.warning(
                "Token refresh rejected: user_id=%s, status=%d",
                credential.user_id,
                response.status_code,
            )
            raise RefreshFailed(response.status_code, response.text)

        tokens = msgspec.json.decode(response.content, type=TokenResponse)
        expires_at = tokens.expires_at()
        updated = await self._store.update_tokens(
            credential.user_id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=expires_at,
        )
        if updated is None:
            # Disconnected while refreshing; hand back the token without storing it
            return msgspec.structs.replace(
                credential,
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                expires_at=expires_at,
            )
        return updated

    async def ensure_valid_token(self, credential: Credential) -> str:
        """Return an access token that is good for at least the buffer.

        Raises:
            RefreshFailed: Stored refresh token was rejected
        """
        if not credential.expires_within(self._buffer):
            return credential.access_token

        async with self._lock(credential.user_id):
            current = await self._store.get(credential.user_id) or credential
            if not current.expires_within(self._buffer):
                logger.debug(
                    "Token refreshed by a concurrent request: user_id=%s",
                    credential.user_id,
                )
                return current.access_token
            refreshed = await self._refresh(current)
        return refreshed.access_token

    async def force_refresh(self, user_id: str) -> Credential:
        """Refresh the stored credential regardless of its expiry.

        Raises:
            NoConnection: No credential is stored for the user
            RefreshFailed: Stored refresh token was rejected
        """
        async with self._lock(user_id):
            credential = await self._store.get(user_id)
            if credential is None:
                raise NoConnection()
            return await self._refresh(credential)
