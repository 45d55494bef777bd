from __future__ import annotations

import os

import httpx
from loguru import logger

from poissonfields.errors import AcquisitionError
from poissonfields.models import SearchResult

BING_ENDPOINT = "https://api.bing.microsoft.com/v7.0/images/search"

# JPEG has no alpha channel, so these results can never pass the corner check.
_OPAQUE_FORMATS = {"jpeg", "jpg", "image/jpeg", "image/jpg"}


class BingImageSearch:
    """Image search backed by the Bing Image Search v7 REST API.

    Args:
        api_key: Subscription key. Defaults to the ``BING_KEY`` environment
            variable.
        count: Number of results requested per query.
        endpoint: API endpoint URL.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        api_key: str | None = None,
        count: int = 50,
        endpoint: str = BING_ENDPOINT,
        timeout: float = 30,
    ) -> None:
        self.api_key = api_key or os.environ.get("BING_KEY", "")
        self.count = count
        self.endpoint = endpoint
        self.timeout = timeout

    async def search(self, term: str) -> list[SearchResult]:
        """Query Bing for ``term`` and return non-JPEG image results.

        Args:
            term: Free-text query, e.g. ``"transparent teapot"``.

        Returns:
            Results in provider ranking order, JPEGs removed.

        Raises:
            AcquisitionError: If no API key is configured, the request
                fails, or the response body is malformed.
        """
        if not self.api_key:
            raise AcquisitionError("BING_KEY is not set")

        logger.debug("[Bing] search {!r} (count={})", term, self.count)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(
                    self.endpoint,
                    params={"q": term, "count": self.count},
                    headers={"Ocp-Apim-Subscription-Key": self.api_key},
                )
                resp.raise_for_status()
                payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AcquisitionError(f"Bing image search failed for {term!r}: {exc}") from exc

        values = payload.get("value") if isinstance(payload, dict) else None
        if not isinstance(values, list):
            raise AcquisitionError(f"Bing returned an unexpected payload for {term!r}")

        results = [
            SearchResult(
                url=item["contentUrl"],
                content_type=item.get("encodingFormat", ""),
                title=item.get("name", ""),
                provider="bing",
            )
            for item in values
            if isinstance(item, dict) and item.get("contentUrl")
        ]
        kept = [r for r in results if r.content_type.lower() not in _OPAQUE_FORMATS]
        logger.debug("[Bing] {} result(s), {} after dropping JPEGs", len(results), len(kept))
        return kept
