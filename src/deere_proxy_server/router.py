"""Action dispatch for the auth and data proxy endpoints.

Each inbound request names an ``action``. Auth actions manage the stored
John Deere connection; data actions read the provider API on the
caller's behalf. Handlers return JSON-serializable values (msgspec
structs included) and raise DeereProxyError subclasses on failure.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

import httpx

from .config import DeereConfig
from .deere.client import DeereClient
from .deere.harvest import HarvestAggregator, fields_path
from .errors import (
    MissingField,
    NoConnection,
    OrganizationNotSelected,
    UnknownAction,
    ValidationError,
)
from .logging_config import get_logger
from .models import Credential, FieldHarvestOperations
from .oauth.storage import CredentialStore
from .oauth.tokens import TokenManager

logger = get_logger("router")

AUTH_ACTIONS = frozenset({"exchange", "refresh", "disconnect"})
DATA_ACTIONS = frozenset(
    {"organizations", "select-organization", "fields", "harvest-operations"}
)
# Actions that change state; read actions accept GET or POST
POST_ACTIONS = AUTH_ACTIONS | {"select-organization"}

SUCCESS: dict[str, Any] = {"success": True}

Handler = Callable[[str, dict[str, Any]], Awaitable[Any]]


class ActionRouter:
    """Stateless per call; all durable state lives in the credential store."""

    def __init__(
        self,
        tokens: TokenManager,
        client: DeereClient,
        aggregator: HarvestAggregator,
    ) -> None:
        self._tokens = tokens
        self._store = tokens.store
        self._client = client
        self._aggregator = aggregator
        self._handlers: dict[str, Handler] = {
            "exchange": self._exchange,
            "refresh": self._refresh,
            "disconnect": self._disconnect,
            "organizations": self._organizations,
            "select-organization": self._select_organization,
            "fields": self._fields,
            "harvest-operations": self._harvest_operations,
        }

    @classmethod
    def from_config(
        cls,
        config: DeereConfig,
        store: CredentialStore,
        http_client: httpx.AsyncClient,
    ) -> "ActionRouter":
        """Wire the token manager, API client and aggregator together."""
        client = DeereClient(config, http_client)
        return cls(
            tokens=TokenManager(config, store, http_client),
            client=client,
            aggregator=HarvestAggregator(client, config.max_concurrent_requests),
        )

    async def handle(
        self,
        user_id: str,
        action: str | None,
        body: dict[str, Any] | None = None,
        allowed: frozenset[str] | None = None,
    ) -> Any:
        """Dispatch an action for an authenticated user.

        Args:
            user_id: Verified caller identity
            action: Action discriminator from the request
            body: Decoded JSON request body, if any
            allowed: Actions the calling endpoint accepts (default: all)

        Raises:
            UnknownAction: Action is missing, unknown, or not allowed here
        """
        handler = self._handlers.get(action or "")
        if handler is None or (allowed is not None and action not in allowed):
            logger.info("Unknown action: user_id=%s, action=%s", user_id, action)
            raise UnknownAction(action)

        logger.debug("Dispatching action=%s for user_id=%s", action, user_id)
        return await handler(user_id, body or {})

    async def _connection(self, user_id: str) -> tuple[Credential, str]:
        credential = await self._store.get(user_id)
        if credential is None:
            raise NoConnection()
        access_token = await self._tokens.ensure_valid_token(credential)
        return credential, access_token

    async def _selected_connection(self, user_id: str) -> tuple[str, str]:
        credential, access_token = await self._connection(user_id)
        if not credential.selected_org_id:
            raise OrganizationNotSelected()
        return credential.selected_org_id, access_token

    # Auth actions

    async def _exchange(self, user_id: str, body: dict[str, Any]) -> Any:
        code = body.get("code")
        redirect_uri = body.get("redirectUri")
        if not code or not redirect_uri:
            raise MissingField("code", "redirectUri")
        await self._tokens.exchange_code(user_id, code, redirect_uri)
        return SUCCESS

    async def _refresh(self, user_id: str, body: dict[str, Any]) -> Any:
        await self._tokens.force_refresh(user_id)
        return SUCCESS

    async def _disconnect(self, user_id: str, body: dict[str, Any]) -> Any:
        deleted = await self._store.delete(user_id)
        logger.info("Disconnected user_id=%s (had_connection=%s)", user_id, deleted)
        return SUCCESS

    # Data actions

    async def _organizations(self, user_id: str, body: dict[str, Any]) -> Any:
        _, access_token = await self._connection(user_id)
        return await self._client.get(access_token, "/organizations")

    async def _select_organization(self, user_id: str, body: dict[str, Any]) -> Any:
        org_id = body.get("orgId")
        if not org_id:
            raise MissingField("orgId")
        org_name = body.get("orgName") or None
        if org_name is not None and not isinstance(org_name, str):
            raise ValidationError("orgName must be a string")
        if await self._store.get(user_id) is None:
            raise NoConnection()
        await self._store.select_organization(user_id, str(org_id), org_name)
        logger.info("Selected organization: user_id=%s, org_id=%s", user_id, org_id)
        return SUCCESS

    async def _fields(self, user_id: str, body: dict[str, Any]) -> Any:
        org_id, access_token = await self._selected_connection(user_id)
        return await self._client.get(access_token, fields_path(org_id))

    async def _harvest_operations(self, user_id: str, body: dict[str, Any]) -> Any:
        return {"values": await self.list_harvest_operations(user_id)}

    async def list_harvest_operations(
        self, user_id: str
    ) -> list[FieldHarvestOperations]:
        """Harvest operations of the selected organization, grouped by field."""
        org_id, access_token = await self._selected_connection(user_id)
        return await self._aggregator.list_harvest_operations(access_token, org_id)
