from __future__ import annotations

import itertools
from pathlib import Path
from typing import Protocol

import httpx
from loguru import logger

_USER_AGENT = "poissonfields/0.1"


class Fetcher(Protocol):
    """Protocol for retrieving raw asset bytes from a source URL."""

    async def fetch(self, url: str) -> bytes:
        """Return the raw bytes at ``url``.

        Raises:
            Exception: Any failure; the candidate pool drops the asset.
        """
        ...


class HttpxFetcher:
    """Fetch assets over HTTP with a shared ``httpx.AsyncClient``.

    Use as an async context manager so the underlying client is closed
    when the run finishes. When ``cache_dir`` is set every successful
    download is also written to ``cache_dir/{n}.png``.

    Args:
        timeout: Per-request timeout in seconds.
        cache_dir: Optional directory receiving a copy of each download.
        client: Pre-built client to use instead of creating one. The
            fetcher does not close a client it did not create.
    """

    def __init__(
        self,
        timeout: float = 30,
        cache_dir: Path | str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._cache_dir = Path(cache_dir) if cache_dir is not None else None
        self._client = client
        self._owns_client = client is None
        self._counter = itertools.count(1)

    async def __aenter__(self) -> HttpxFetcher:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers={"User-Agent": _USER_AGENT},
            )
        if self._cache_dir is not None:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> bytes:
        """Download ``url`` and return the response body.

        Args:
            url: Absolute URL of the asset.

        Returns:
            Raw response bytes.

        Raises:
            RuntimeError: If called outside the async context.
            httpx.HTTPError: On transport failures or non-2xx responses.
        """
        if self._client is None:
            raise RuntimeError("HttpxFetcher must be used as an async context manager")
        resp = await self._client.get(url)
        resp.raise_for_status()
        data = resp.content

        if self._cache_dir is not None:
            path = self._cache_dir / f"{next(self._counter)}.png"
            path.write_bytes(data)
            logger.debug("Downloaded {} → {}", url, path)
        else:
            logger.debug("Downloaded {} ({} bytes)", url, len(data))
        return data
