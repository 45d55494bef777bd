"""Rejection-sampled placement of variable-radius images on a bounded canvas.

True Poisson-disk sampling (Bridson) relies on a background grid sized for
a single fixed radius. Here every image has its own radius and a
composition holds only a handful of images, so each candidate center is
checked against every placed image with a linear scan. Past a few dozen
images that scan should be replaced by a spatial grid.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import numpy as np
from loguru import logger

from poissonfields.errors import PlacementDegraded
from poissonfields.models import LayoutResult, PlacedImage, TransformedImage


class PlacementState(Enum):
    PLACING = "placing"
    PLACED = "placed"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class PoissonLayout:
    """Places transformed images so their bounding circles do not overlap.

    Each image, in sequence order, samples a center uniformly within the
    canvas and is rejected while it sits closer than
    ``(r_i + r_j) * separation_factor`` to any image already placed. After
    ``retry_cap`` rejected samples the last sample is accepted anyway and
    reported as degraded, so a run always terminates after at most
    ``len(items) * retry_cap`` samples.

    Attributes:
        width: Canvas width in pixels.
        height: Canvas height in pixels.
        separation_factor: Multiplier on the summed radii.
        retry_cap: Samples per image before falling back.
        contain: Keep the rotated footprint inside the canvas. When
            ``False`` any center within the canvas is valid.
    """

    width: int
    height: int
    separation_factor: float = 1.0
    retry_cap: int = 100
    contain: bool = True

    def __post_init__(self) -> None:
        if self.retry_cap < 1:
            raise ValueError(f"retry_cap must be at least 1, got {self.retry_cap}")

    def place(
        self, items: Sequence[TransformedImage], rng: np.random.Generator
    ) -> LayoutResult:
        """Assign a center position to every item in order.

        Args:
            items: Transformed images in placement order.
            rng: Random source for position sampling.

        Returns:
            A ``LayoutResult`` with one ``PlacedImage`` per item, in the same
            order, plus any fallback records and the number of separation
            checks performed.
        """
        placed: list[PlacedImage] = []
        degraded: list[PlacementDegraded] = []
        checks = 0

        for index, item in enumerate(items):
            radius = item.radius
            state = PlacementState.PLACING
            attempts = 0
            x = y = 0.0

            while state is PlacementState.PLACING:
                x, y = self._sample(item, rng)
                attempts += 1
                clear, performed = self._is_clear(x, y, radius, placed)
                checks += performed
                if clear:
                    state = PlacementState.PLACED
                elif attempts >= self.retry_cap:
                    state = PlacementState.FALLBACK

            if state is PlacementState.FALLBACK:
                logger.warning(
                    "Image {} not separable after {} attempts; placing at ({:.0f}, {:.0f}) anyway.",
                    index,
                    attempts,
                    x,
                    y,
                )
                degraded.append(PlacementDegraded(index=index, attempts=attempts, x=x, y=y))
            else:
                logger.debug(
                    "Image {} placed at ({:.0f}, {:.0f}), r={:.1f}, after {} attempt(s).",
                    index,
                    x,
                    y,
                    radius,
                    attempts,
                )

            placed.append(
                PlacedImage(
                    item=item,
                    x=x,
                    y=y,
                    radius=radius,
                    attempts=attempts,
                    degraded=state is PlacementState.FALLBACK,
                )
            )

        return LayoutResult(placed=tuple(placed), degraded=tuple(degraded), checks=checks)

    def _bounds(self, extent: float, size: int) -> tuple[float, float]:
        """Return the valid ``(low, high)`` center range along one axis."""
        if not self.contain:
            return 0.0, float(size)
        half = extent / 2
        if extent >= size:
            return size / 2, size / 2
        return half, size - half

    def _sample(self, item: TransformedImage, rng: np.random.Generator) -> tuple[float, float]:
        footprint_w, footprint_h = item.footprint
        x_low, x_high = self._bounds(footprint_w, self.width)
        y_low, y_high = self._bounds(footprint_h, self.height)
        return float(rng.uniform(x_low, x_high)), float(rng.uniform(y_low, y_high))

    def _is_clear(
        self, x: float, y: float, radius: float, placed: Sequence[PlacedImage]
    ) -> tuple[bool, int]:
        """Check a candidate center against every placed image.

        Returns:
            ``(clear, checks)`` where ``checks`` counts the comparisons made
            before the first conflict (or all of them when clear).
        """
        checks = 0
        for other in placed:
            checks += 1
            min_distance = (radius + other.radius) * self.separation_factor
            if math.hypot(x - other.x, y - other.y) < min_distance:
                return False, checks
        return True, checks
