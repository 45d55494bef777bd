from __future__ import annotations

import math
from dataclasses import dataclass, field

from PIL import Image

from poissonfields.errors import DecodeWarning, PlacementDegraded


@dataclass
class SearchResult:
    """A single asset source returned by a search provider.

    Attributes:
        url: Direct URL to the image file.
        content_type: MIME type reported by the provider, or ``""`` if unknown.
        title: Human-readable title of the result.
        provider: Short name of the provider that produced the result.
    """

    url: str
    content_type: str = ""
    title: str = ""
    provider: str = ""


@dataclass(frozen=True)
class ImageAsset:
    """A decoded RGBA image ready for classification and placement.

    Attributes:
        image: Decoded image, always in ``RGBA`` mode.
        width: Width in pixels.
        height: Height in pixels.
        source: URL or descriptor the bytes were fetched from.
    """

    image: Image.Image
    width: int
    height: int
    source: str = ""

    @classmethod
    def from_image(cls, image: Image.Image, source: str = "") -> ImageAsset:
        """Wrap a PIL image, converting it to RGBA when necessary."""
        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
        return cls(image=rgba, width=rgba.width, height=rgba.height, source=source)

    @property
    def longest_side(self) -> int:
        return max(self.width, self.height)


@dataclass(frozen=True)
class CandidateSet:
    """Suitable assets that survived probing, in arrival order.

    Attributes:
        assets: Assets whose four corners are fully transparent.
        probe_limit: Maximum number of sources that were probed.
        dropped: One record per probed source removed from the pool.
    """

    assets: tuple[ImageAsset, ...]
    probe_limit: int
    dropped: tuple[DecodeWarning, ...] = ()

    def __len__(self) -> int:
        return len(self.assets)

    def __iter__(self):
        return iter(self.assets)

    def __getitem__(self, index: int) -> ImageAsset:
        return self.assets[index]


@dataclass(frozen=True)
class Transform:
    """Rotation and scale applied to one selected asset.

    Attributes:
        rotation: Clockwise rotation in degrees, shared across the run.
        target_size: Desired longest side in pixels after scaling.
        scale: ``target_size`` divided by the asset's longest side.
    """

    rotation: float
    target_size: float
    scale: float


@dataclass(frozen=True)
class TransformedImage:
    """An asset paired with the transform it will be drawn with."""

    asset: ImageAsset
    transform: Transform

    @property
    def scaled_size(self) -> tuple[float, float]:
        return (
            self.asset.width * self.transform.scale,
            self.asset.height * self.transform.scale,
        )

    @property
    def footprint(self) -> tuple[float, float]:
        """Width and height of the axis-aligned box around the rotated, scaled image."""
        w, h = self.scaled_size
        theta = math.radians(self.transform.rotation)
        cos, sin = abs(math.cos(theta)), abs(math.sin(theta))
        return (w * cos + h * sin, w * sin + h * cos)

    @property
    def radius(self) -> float:
        """Half the larger footprint dimension, used for separation checks."""
        return max(self.footprint) / 2


@dataclass(frozen=True)
class PlacedImage:
    """A transformed image with its final center position on the canvas.

    Attributes:
        item: The transformed image being placed.
        x: Center x coordinate in canvas pixels.
        y: Center y coordinate in canvas pixels.
        radius: Effective bounding radius used for separation.
        attempts: Number of positions sampled before acceptance.
        degraded: ``True`` when the position was accepted via fallback.
    """

    item: TransformedImage
    x: float
    y: float
    radius: float
    attempts: int = 1
    degraded: bool = False

    @property
    def rotation(self) -> float:
        return self.item.transform.rotation


@dataclass(frozen=True)
class LayoutResult:
    """Outcome of placing a sequence of transformed images.

    Attributes:
        placed: Placed images in sequence (and draw) order.
        degraded: Fallback placements, one per image that exhausted the
            retry cap.
        checks: Total pairwise separation checks performed.
    """

    placed: tuple[PlacedImage, ...]
    degraded: tuple[PlacementDegraded, ...] = ()
    checks: int = 0


@dataclass
class CollageOutput:
    """Final composed collage with its encoded buffer and provenance.

    Attributes:
        image: The composed collage as an RGB PIL Image.
        buffer: PNG-encoded bytes of ``image``.
        width: Canvas width in pixels.
        height: Canvas height in pixels.
        label: Term the collage was built from; used as the caption.
        placements: One record per placed image, in draw order.
    """

    image: Image.Image
    buffer: bytes
    width: int
    height: int
    label: str = ""
    placements: list[dict] = field(default_factory=list)
