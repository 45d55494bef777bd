from __future__ import annotations

from io import BytesIO

from loguru import logger
from PIL import Image, UnidentifiedImageError

from poissonfields.errors import AssetDecodeError
from poissonfields.models import ImageAsset

FULLY_TRANSPARENT = 0


def decode_asset(data: bytes, source: str = "") -> ImageAsset:
    """Decode raw bytes into an RGBA ``ImageAsset``.

    The image is fully loaded so truncated files fail here rather than
    later during composition.

    Args:
        data: Encoded image bytes.
        source: URL or descriptor recorded on the asset.

    Returns:
        The decoded asset.

    Raises:
        AssetDecodeError: If the bytes are empty, corrupt, or in an
            unsupported format.
    """
    if not data:
        raise AssetDecodeError(f"empty payload from {source or 'unknown source'}")
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (
        UnidentifiedImageError,
        OSError,
        SyntaxError,
        EOFError,
        ValueError,
        Image.DecompressionBombError,
    ) as exc:
        raise AssetDecodeError(f"cannot decode {source or 'image'}: {exc}") from exc
    if img.width == 0 or img.height == 0:
        raise AssetDecodeError(f"zero-sized image from {source or 'unknown source'}")
    return ImageAsset.from_image(img, source=source)


def is_suitable(asset: ImageAsset) -> bool:
    """Return ``True`` if all four corner pixels of ``asset`` are fully transparent.

    An O(1) heuristic for "isolated subject on no background": only the
    alpha values at (0, 0), (0, H-1), (W-1, 0) and (W-1, H-1) are sampled.
    """
    alpha = asset.image.getchannel("A")
    right, bottom = asset.width - 1, asset.height - 1
    corners = ((0, 0), (0, bottom), (right, 0), (right, bottom))
    return all(alpha.getpixel(xy) == FULLY_TRANSPARENT for xy in corners)


def classify_bytes(data: bytes, source: str = "") -> tuple[ImageAsset | None, bool]:
    """Decode and classify raw bytes without raising on bad input.

    Args:
        data: Encoded image bytes.
        source: URL or descriptor of the bytes, used for logging.

    Returns:
        ``(asset, verdict)``. A decode failure yields ``(None, False)``.
    """
    try:
        asset = decode_asset(data, source)
    except AssetDecodeError as exc:
        logger.warning("Dropping undecodable image {}: {}", source, exc)
        return None, False
    verdict = is_suitable(asset)
    logger.debug("Classified {} ({}×{}): suitable={}", source, asset.width, asset.height, verdict)
    return asset, verdict
