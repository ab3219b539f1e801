"""Data structures for credentials and John Deere API projections."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import msgspec


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Credential(msgspec.Struct, kw_only=True):
    """Stored OAuth token set plus organization selection for one user."""

    user_id: str
    access_token: str
    refresh_token: str
    expires_at: datetime
    selected_org_id: str | None = None
    selected_org_name: str | None = None
    updated_at: datetime = msgspec.field(default_factory=utcnow)

    def expires_within(self, buffer: timedelta, now: datetime | None = None) -> bool:
        """Return True if fewer than ``buffer`` remain before expiry."""
        remaining = self.expires_at - (now or utcnow())
        return remaining <= buffer


class TokenResponse(msgspec.Struct):
    """Token endpoint payload for both grant types."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"
    scope: str = ""

    def expires_at(self, now: datetime | None = None) -> datetime:
        return (now or utcnow()) + timedelta(seconds=self.expires_in)


class Link(msgspec.Struct):
    rel: str
    uri: str


class Organization(msgspec.Struct):
    id: str
    name: str
    type: str = ""


UNKNOWN_FIELD_NAME = "Unknown Field"


class Field(msgspec.Struct):
    id: str
    name: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or UNKNOWN_FIELD_NAME


class FieldHarvestOperations(msgspec.Struct, rename="camel"):
    """Harvest operations grouped under the field that produced them.

    ``operations`` holds the Operations Center objects unchanged (id, type,
    startDate, endDate, crop, variety, harvestMoisture, totalYield, links
    and whatever else upstream reports).
    """

    field_id: str
    field_name: str
    operations: list[Any]


def next_page_uri(payload: dict[str, Any]) -> str | None:
    """Return the ``nextPage`` link of a paginated API response, if any."""
    links = msgspec.convert(payload.get("links") or [], list[Link])
    for link in links:
        if link.rel == "nextPage":
            return link.uri
    return None
