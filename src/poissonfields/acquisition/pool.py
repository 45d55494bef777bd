from __future__ import annotations

import asyncio
from collections.abc import Sequence

from loguru import logger

from poissonfields.acquisition.classifier import classify_bytes
from poissonfields.acquisition.fetcher import Fetcher
from poissonfields.errors import AcquisitionError, DecodeWarning, InsufficientCandidatesError
from poissonfields.models import CandidateSet, ImageAsset, SearchResult

_ProbeOutcome = tuple[ImageAsset | None, DecodeWarning | None]


async def build_candidate_pool(
    sources: Sequence[SearchResult | str],
    fetcher: Fetcher,
    probe_limit: int = 10,
    timeout: float | None = None,
    concurrency: int | None = None,
) -> CandidateSet:
    """Fetch and classify up to ``probe_limit`` sources into a ``CandidateSet``.

    Sources are probed independently and concurrently (at most
    ``concurrency`` at once, defaulting to the number probed). A fetch
    failure, a decode failure, or an unsuitable image drops only that
    source. Surviving assets keep the order of ``sources``.

    Args:
        sources: Search results or bare URLs, in probe order.
        fetcher: Backend used to download each source.
        probe_limit: Maximum number of sources to probe.
        timeout: Overall time budget in seconds for all fetches, or ``None``.
        concurrency: Maximum number of fetches in flight.

    Returns:
        The finalized candidate set.

    Raises:
        AcquisitionError: If the overall timeout expires.
        InsufficientCandidatesError: If no source yields a suitable asset.
    """
    if probe_limit < 1:
        raise ValueError(f"probe_limit must be at least 1, got {probe_limit}")

    urls = [s.url if isinstance(s, SearchResult) else s for s in sources][:probe_limit]
    semaphore = asyncio.Semaphore(concurrency or max(1, len(urls)))

    async def probe(url: str) -> _ProbeOutcome:
        async with semaphore:
            try:
                data = await fetcher.fetch(url)
            except Exception as exc:
                logger.warning("Failed to fetch {}: {}", url, exc)
                return None, DecodeWarning(url, f"fetch failed: {exc}")
        # Decoding is CPU-bound; keep it off the event loop.
        asset, suitable = await asyncio.to_thread(classify_bytes, data, url)
        if asset is None:
            return None, DecodeWarning(url, "decode failed")
        if not suitable:
            return None, DecodeWarning(url, "corners not transparent")
        return asset, None

    try:
        async with asyncio.timeout(timeout):
            outcomes: list[_ProbeOutcome] = await asyncio.gather(*(probe(u) for u in urls))
    except TimeoutError as exc:
        raise AcquisitionError(
            f"fetching {len(urls)} candidate(s) exceeded the {timeout}s timeout"
        ) from exc

    assets = tuple(asset for asset, _ in outcomes if asset is not None)
    dropped = tuple(warning for _, warning in outcomes if warning is not None)

    if not assets:
        raise InsufficientCandidatesError(
            f"no suitable candidates among {len(urls)} probed source(s)", dropped=dropped
        )

    logger.debug("Candidate pool: {}/{} source(s) suitable.", len(assets), len(urls))
    return CandidateSet(assets=assets, probe_limit=probe_limit, dropped=dropped)
