"""Harvest operations per field.

Lists every field of the selected organization, then fetches the
harvest-type field operations of each field concurrently. The field list
is all-or-nothing. Per-field fetches are best effort: a field whose
operations call fails (non-2xx or transport error) is left out of the
result and the other fields are still returned. Operations of a
successful call are passed through as upstream reported them.
"""

from __future__ import annotations

import asyncio

import msgspec

from ..errors import UpstreamError
from ..logging_config import get_logger
from ..models import Field, FieldHarvestOperations
from .client import DeereClient

logger = get_logger("deere.harvest")


def fields_path(org_id: str) -> str:
    return f"/organizations/{org_id}/fields"


def harvest_operations_path(org_id: str, field_id: str) -> str:
    return (
        f"/organizations/{org_id}/fields/{field_id}"
        "/fieldOperations?fieldOperationType=HARVEST"
    )


class HarvestAggregator:
    """Fans out one harvest-operations call per field."""

    def __init__(self, client: DeereClient, max_concurrent_requests: int = 8) -> None:
        self._client = client
        self._max_concurrent = max_concurrent_requests

    async def list_fields(self, access_token: str, org_id: str) -> list[Field]:
        values = await self._client.get_all_values(access_token, fields_path(org_id))
        try:
            return msgspec.convert(values, list[Field])
        except msgspec.ValidationError as e:
            raise UpstreamError(
                502, str(e), "John Deere API returned an invalid field list"
            ) from e

    async def _field_operations(
        self,
        semaphore: asyncio.Semaphore,
        access_token: str,
        org_id: str,
        field: Field,
    ) -> FieldHarvestOperations | None:
        async with semaphore:
            try:
                operations = await self._client.get_all_values(
                    access_token, harvest_operations_path(org_id, field.id)
                )
            except UpstreamError as e:
                logger.warning(
                    "Skipping field %s (%s): harvest operations unavailable: %s",
                    field.id,
                    field.display_name,
                    e,
                )
                return None
        return FieldHarvestOperations(
            field_id=field.id,
            field_name=field.display_name,
            operations=operations,
        )

    async def list_harvest_operations(
        self, access_token: str, org_id: str
    ) -> list[FieldHarvestOperations]:
        """Return harvest operations grouped by field, in field-list order.

        Raises:
            UpstreamError: The field list could not be fetched
        """
        fields = await self.list_fields(access_token, org_id)
        logger.debug(
            "Fetching harvest operations: org_id=%s, fields=%d", org_id, len(fields)
        )

        semaphore = asyncio.Semaphore(self._max_concurrent)
        results = await asyncio.gather(
            *(
                self._field_operations(semaphore, access_token, org_id, field)
                for field in fields
            )
        )
        groups = [group for group in results if group is not None]

        if len(groups) < len(fields):
            logger.info(
                "Harvest operations partial: org_id=%s, returned=%d of %d fields",
                org_id,
                len(groups),
                len(fields),
            )
        return groups
