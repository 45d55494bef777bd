from __future__ import annotations

from dataclasses import dataclass


class CollageError(Exception):
    """Base class for failures that abort a whole collage run."""


class AcquisitionError(CollageError):
    """The search provider or the fetch layer failed for the run as a whole.

    Raised when the provider is unreachable, returns an unusable response,
    or when fetching candidates exceeds the overall timeout.
    """


class InsufficientCandidatesError(CollageError):
    """No suitable candidate survived probing.

    Attributes:
        dropped: Records of every probed asset that was removed from the
            pool, in probe order.
    """

    def __init__(self, message: str, dropped: tuple[DecodeWarning, ...] = ()) -> None:
        super().__init__(message)
        self.dropped = dropped


class RenderError(CollageError):
    """Drawing or encoding the final canvas failed."""


class AssetDecodeError(ValueError):
    """Raw bytes could not be decoded into an image."""


@dataclass(frozen=True)
class DecodeWarning:
    """A single asset dropped from the candidate pool.

    Attributes:
        source: URL (or other descriptor) of the dropped asset.
        reason: Short human-readable reason, e.g. ``"fetch failed"``.
    """

    source: str
    reason: str


@dataclass(frozen=True)
class PlacementDegraded:
    """An image placed via fallback after the retry cap was exhausted.

    Attributes:
        index: Position of the image in the draw sequence.
        attempts: Number of rejected samples before falling back.
        x: Accepted center x coordinate.
        y: Accepted center y coordinate.
    """

    index: int
    attempts: int
    x: float
    y: float


class PublishError(CollageError):
    """The publisher rejected or failed to deliver a finished collage."""
