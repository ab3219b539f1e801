"""Credential storage.

Provides a factory for the key-value backend and the CredentialStore
repository that keeps one John Deere credential per user on top of it.
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import TYPE_CHECKING

import msgspec

from ..logging_config import get_logger
from ..models import Credential, utcnow

if TYPE_CHECKING:
    from key_value.aio.protocols.key_value import AsyncKeyValue

logger = get_logger("oauth.storage")

CREDENTIALS_COLLECTION = "john-deere-connections"


def create_storage() -> "AsyncKeyValue":
    """Create storage backend based on environment configuration.

    Storage type is determined by OAUTH_STORAGE_TYPE environment variable:
    - 'memory' (default): In-memory storage (for development/testing)
    - 'redis': Redis-based storage (for production with persistence)

    If STORAGE_ENCRYPTION_KEY is set, storage will be wrapped with
    Fernet encryption so tokens are never stored in clear text.

    Environment variables:
        OAUTH_STORAGE_TYPE: Storage type ('memory' or 'redis')
        REDIS_URL: Redis connection URL (default: redis://localhost:6379)
        STORAGE_ENCRYPTION_KEY: Fernet key or passphrase (optional)

    Returns:
        AsyncKeyValue: Configured storage backend

    Raises:
        ValueError: If unknown storage type is specified
    """
    storage_type = os.getenv("OAUTH_STORAGE_TYPE", "memory").lower()
    encryption_key = os.getenv("STORAGE_ENCRYPTION_KEY")

    logger.info(
        "Creating storage backend: type=%s, encrypted=%s",
        storage_type,
        bool(encryption_key),
    )

    if storage_type == "memory":
        from key_value.aio.stores.memory import MemoryStore

        storage: AsyncKeyValue = MemoryStore()

    elif storage_type == "redis":
        from key_value.aio.stores.redis import RedisStore

        redis_url = os.getenv("REDIS_URL", "redis://localhost:6379")
        storage = RedisStore(url=redis_url)
        logger.debug("Created Redis storage backend: url=%s", redis_url)

    else:
        raise ValueError(f"Unknown storage type: {storage_type}")

    if encryption_key:
        from cryptography.fernet import Fernet
        from key_value.aio.wrappers.encryption.fernet import FernetEncryptionWrapper

        # A 44-char base64 value is used as the Fernet key itself, anything
        # else is source material for the wrapper's key derivation
        try:
            fernet = Fernet(encryption_key.encode())
        except ValueError:
            storage = FernetEncryptionWrapper(
                key_value=storage, source_material=encryption_key
            )
        else:
            storage = FernetEncryptionWrapper(key_value=storage, fernet=fernet)
        logger.debug("Applied Fernet encryption wrapper to storage")

    return storage


class CredentialStore:
    """One Credential record per user, keyed by user identity.

    Token fields are always written together as a triple. Selection
    fields are always written together as a pair.
    """

    def __init__(
        self,
        storage: "AsyncKeyValue",
        collection: str = CREDENTIALS_COLLECTION,
    ) -> None:
        self._storage = storage
        self._collection = collection

    async def get(self, user_id: str) -> Credential | None:
        data = await self._storage.get(key=user_id, collection=self._collection)
        if data is None:
            return None
        return msgspec.convert(data, Credential)

    async def upsert(self, credential: Credential) -> Credential:
        """Insert or fully replace the credential for its user."""
        await self._storage.put(
            key=credential.user_id,
            value=msgspec.to_builtins(credential),
            collection=self._collection,
        )
        return credential

    async def delete(self, user_id: str) -> bool:
        """Delete a user's credential. Returns False if there was none."""
        return await self._storage.delete(key=user_id, collection=self._collection)

    async def update_tokens(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> Credential | None:
        """Replace the token triple, keeping the organization selection.

        Returns None without writing if the credential was deleted meanwhile.
        """
        current = await self.get(user_id)
        if current is None:
            logger.info("Credential for user_id=%s gone before token update", user_id)
            return None
        updated = msgspec.structs.replace(
            current,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            updated_at=utcnow(),
        )
        return await self.upsert(updated)

    async def select_organization(
        self,
        user_id: str,
        org_id: str | None,
        org_name: str | None,
    ) -> Credential | None:
        """Set or clear the selected organization pair."""
        current = await self.get(user_id)
        if current is None:
            return None
        updated = msgspec.structs.replace(
            current,
            selected_org_id=org_id,
            selected_org_name=org_name if org_id else None,
            updated_at=utcnow(),
        )
        return await self.upsert(updated)
