from __future__ import annotations

from typing import Protocol

from poissonfields.models import SearchResult


class SearchProvider(Protocol):
    """Protocol for remote image search backends.

    Implementations return candidate image sources for a free-text query
    and raise ``AcquisitionError`` when the provider itself fails. An
    empty list is a valid answer, not an error.
    """

    async def search(self, term: str) -> list[SearchResult]:
        """Return image sources matching ``term``, best matches first."""
        ...
