from __future__ import annotations

import asyncio
import itertools
import urllib.parse

import internetarchive
from loguru import logger

from poissonfields.errors import AcquisitionError
from poissonfields.models import SearchResult

DOWNLOAD_URL_TEMPLATE = "https://archive.org/download/{identifier}/{name}"

IMAGE_FIELDS = ["identifier", "title"]

# Words that describe the file rather than the subject. The PNG format
# filter already stands in for them, and archive metadata rarely says so.
_IMPLICIT_TERMS = {"transparent", "png", "cutout", "isolated"}


class InternetArchiveSearch:
    """Image search over Internet Archive items that ship PNG files.

    Searching is synchronous in the ``internetarchive`` library, so each
    query runs in a worker thread.

    Args:
        max_items: Maximum number of archive items inspected per query.
        files_per_item: Maximum number of PNG files taken from one item.
    """

    def __init__(self, max_items: int = 20, files_per_item: int = 3) -> None:
        self.max_items = max_items
        self.files_per_item = files_per_item

    async def search(self, term: str) -> list[SearchResult]:
        """Return PNG download URLs from items matching ``term``.

        Raises:
            AcquisitionError: If the archive search itself fails.
        """
        try:
            return await asyncio.to_thread(self._search_sync, term)
        except AcquisitionError:
            raise
        except Exception as exc:
            raise AcquisitionError(f"Internet Archive search failed for {term!r}: {exc}") from exc

    def _search_sync(self, term: str) -> list[SearchResult]:
        query = build_query(term)
        logger.debug(
            "[IA] search query: {}  url: https://archive.org/advancedsearch.php?q={}",
            query,
            urllib.parse.quote(query),
        )
        items = itertools.islice(
            internetarchive.search_items(query, fields=IMAGE_FIELDS), self.max_items
        )

        results: list[SearchResult] = []
        for item in items:
            identifier = item.get("identifier", "")
            if not identifier:
                continue
            results.extend(self._png_results(identifier, item.get("title", "")))
        return results

    def _png_results(self, identifier: str, title: str) -> list[SearchResult]:
        """List up to ``files_per_item`` PNG files of one archive item."""
        try:
            files = internetarchive.get_files(identifier, formats="PNG")
            names = [f.name for f in itertools.islice(files, self.files_per_item)]
        except Exception as exc:
            logger.warning("[IA] Skipping {}: cannot list files ({})", identifier, exc)
            return []
        return [
            SearchResult(
                url=DOWNLOAD_URL_TEMPLATE.format(
                    identifier=identifier, name=urllib.parse.quote(name)
                ),
                content_type="image/png",
                title=title,
                provider="archive",
            )
            for name in names
        ]


def build_query(term: str) -> str:
    """Build a Lucene query for image items carrying PNG files.

    Terms implicit to the PNG filter are dropped; the original words are
    kept if nothing else would remain.
    """
    words = term.split()
    cleaned = [w for w in words if w.lower() not in _IMPLICIT_TERMS]
    effective = cleaned or words
    joined = " AND ".join(effective)
    return f"({joined}) AND mediatype:image AND format:PNG"
