"""HTTP client for the John Deere Operations Center platform API."""

from __future__ import annotations

from typing import Any

import httpx
import msgspec

from ..config import DeereConfig
from ..errors import UpstreamError
from ..logging_config import get_logger
from ..models import next_page_uri

logger = get_logger("deere.client")

DEERE_MEDIA_TYPE = "application/vnd.deere.axiom.v3+json"


class DeereClient:
    """Authenticated calls against the platform API.

    Every non-2xx response and every transport failure is raised as
    UpstreamError. Timeouts map to 504, other transport errors to 502.
    """

    def __init__(self, config: DeereConfig, http_client: httpx.AsyncClient) -> None:
        self._base = config.api_base.rstrip("/")
        self._max_pages = config.max_pages
        self._http = http_client

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base}{path}"

    async def _send(
        self,
        method: str,
        access_token: str,
        path: str,
        body: Any = None,
    ) -> Any:
        url = self._url(path)
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": DEERE_MEDIA_TYPE,
        }
        content = None
        if body is not None:
            headers["Content-Type"] = DEERE_MEDIA_TYPE
            content = msgspec.json.encode(body)

        try:
            response = await self._http.request(
                method, url, headers=headers, content=content
            )
        except httpx.TimeoutException as e:
            logger.warning("John Deere API timeout: %s %s", method, url)
            raise UpstreamError(504, str(e), "John Deere API timeout") from e
        except httpx.HTTPError as e:
            logger.warning("John Deere API unreachable: %s %s: %s", method, url, e)
            raise UpstreamError(502, str(e), "John Deere API unreachable") from e

        if not response.is_success:
            logger.info(
                "John Deere API error: %s %s -> %d", method, url, response.status_code
            )
            raise UpstreamError(response.status_code, response.text)

        if not response.content:
            return {}
        try:
            return msgspec.json.decode(response.content)
        except msgspec.DecodeError as e:
            raise UpstreamError(
                502, response.text, "John Deere API returned invalid JSON"
            ) from e

    async def get(self, access_token: str, path: str) -> Any:
        """GET a path (or absolute API URL) and return the decoded JSON."""
        return await self._send("GET", access_token, path)

    async def post(self, access_token: str, path: str, body: Any) -> Any:
        """POST a JSON body and return the decoded JSON response."""
        return await self._send("POST", access_token, path, body)

    async def get_all_values(self, access_token: str, path: str) -> list[Any]:
        """Collect ``values`` from every page of a paginated resource.

        Follows ``nextPage`` links that stay under the API base URL. A link
        back to a page already read ends the walk.

        Raises:
            UpstreamError: A page failed, or the resource has more than
                ``max_pages`` pages (502)
        """
        values: list[Any] = []
        seen: set[str] = set()
        next_path: str | None = path
        while next_path is not None:
            url = self._url(next_path)
            if url in seen:
                logger.warning("Stopping at repeated nextPage link: %s", url)
                break
            if len(seen) >= self._max_pages:
                raise UpstreamError(
                    502,
                    url,
                    f"John Deere API returned more than {self._max_pages} pages",
                )
            seen.add(url)

            page = await self.get(access_token, url)
            if not isinstance(page, dict):
                raise UpstreamError(
                    502, str(page), "John Deere API returned an unexpected payload"
                )
            values.extend(page.get("values") or [])
            try:
                next_path = next_page_uri(page)
            except msgspec.ValidationError as e:
                raise UpstreamError(
                    502, str(e), "John Deere API returned invalid page links"
                ) from e
            if next_path is not None and not next_path.startswith(self._base):
                logger.warning("Ignoring nextPage link outside API base: %s", next_path)
                next_path = None
        return values
