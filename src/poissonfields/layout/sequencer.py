from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from loguru import logger

from poissonfields.models import ImageAsset, Transform, TransformedImage


def sequence_transforms(
    candidates: Sequence[ImageAsset],
    rng: np.random.Generator,
    composition_range: tuple[int, int] = (1, 3),
    rotation_range: tuple[float, float] = (-60.0, 60.0),
    size_band: tuple[float, float] = (90.0, 150.0),
) -> tuple[TransformedImage, ...]:
    """Select a random subset of candidates and assign each a transform.

    The composition size ``K`` is drawn from ``composition_range``
    (inclusive) and capped at ``len(candidates)``. ``K`` distinct assets
    are drawn without replacement; the draw order becomes both placement
    and paint order. A single rotation is drawn for the whole run, and
    each asset independently draws a target size from ``size_band`` that
    its longest side is scaled to.

    Args:
        candidates: Finalized pool of suitable assets.
        rng: Random source for every draw in this function.
        composition_range: Inclusive ``(min, max)`` number of images.
        rotation_range: ``(low, high)`` rotation bounds in degrees.
        size_band: ``(low, high)`` target longest side in pixels.

    Returns:
        Read-only sequence of transformed images in selection order.
    """
    if not candidates:
        return ()

    low, high = composition_range
    k = min(int(rng.integers(low, high, endpoint=True)), len(candidates))
    indices = rng.choice(len(candidates), size=k, replace=False)

    rotation = float(rng.uniform(*rotation_range))
    logger.debug("Selected {} of {} candidate(s); rotation {:.1f}°", k, len(candidates), rotation)

    sequence = []
    for index in indices:
        asset = candidates[int(index)]
        target_size = float(rng.uniform(*size_band))
        transform = Transform(
            rotation=rotation,
            target_size=target_size,
            scale=target_size / asset.longest_side,
        )
        sequence.append(TransformedImage(asset=asset, transform=transform))
    return tuple(sequence)
