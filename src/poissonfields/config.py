from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

BackgroundMode = Literal["cover", "stretch", "scale"]

_ENV_PREFIX = "POISSONFIELDS_"


@dataclass(frozen=True)
class CollageConfig:
    """Tunable parameters for one collage run.

    Attributes:
        canvas_size: ``(width, height)`` of the output canvas in pixels.
        probe_limit: Maximum number of search results fetched and classified.
        composition_range: Inclusive ``(min, max)`` number of images placed.
        rotation_range: ``(low, high)`` bounds in degrees of the rotation
            shared by every image in the run.
        size_band: ``(low, high)`` bounds in pixels of the longest side of
            each image after scaling.
        separation_factor: Multiplier applied to the sum of two radii when
            checking the minimum distance between centers.
        retry_cap: Samples drawn per image before accepting a fallback
            position.
        timeout: Overall fetch timeout in seconds, or ``None`` for no limit.
        contain: Keep every image's drawn extent inside the canvas. When
            ``False`` only centers are constrained and the composer clips.
        background_path: Optional background image file.
        background_mode: How the background is fitted to the canvas.
        background_scale: Resize factor used by the ``"scale"`` mode.
        background_color: Fill used when no background image is given.
        search_prefix: Word prepended to the term when searching.
        output_dir: Base directory for published runs.
    """

    canvas_size: tuple[int, int] = (900, 450)
    probe_limit: int = 10
    composition_range: tuple[int, int] = (1, 3)
    rotation_range: tuple[float, float] = (-60.0, 60.0)
    size_band: tuple[float, float] = (90.0, 150.0)
    separation_factor: float = 1.0
    retry_cap: int = 100
    timeout: float | None = 60.0
    contain: bool = True
    background_path: Path | None = None
    background_mode: BackgroundMode = "cover"
    background_scale: float = 0.2
    background_color: str = "#0b0d1a"
    search_prefix: str = "transparent"
    output_dir: Path = Path("output")

    def __post_init__(self) -> None:
        width, height = self.canvas_size
        if width <= 0 or height <= 0:
            raise ValueError(f"canvas_size must be positive, got {self.canvas_size}")
        if self.probe_limit < 1:
            raise ValueError(f"probe_limit must be at least 1, got {self.probe_limit}")
        low, high = self.composition_range
        if low < 1 or high < low:
            raise ValueError(f"invalid composition_range {self.composition_range}")
        if self.rotation_range[1] < self.rotation_range[0]:
            raise ValueError(f"invalid rotation_range {self.rotation_range}")
        if self.size_band[0] <= 0 or self.size_band[1] < self.size_band[0]:
            raise ValueError(f"invalid size_band {self.size_band}")
        if self.separation_factor < 0:
            raise ValueError(f"separation_factor must be >= 0, got {self.separation_factor}")
        if self.retry_cap < 1:
            raise ValueError(f"retry_cap must be at least 1, got {self.retry_cap}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.background_mode not in ("cover", "stretch", "scale"):
            raise ValueError(f"unknown background_mode {self.background_mode!r}")
        if self.background_scale <= 0:
            raise ValueError(f"background_scale must be positive, got {self.background_scale}")

    @classmethod
    def from_env(cls, **overrides) -> CollageConfig:
        """Build a config from ``POISSONFIELDS_*`` environment variables.

        Unset variables keep their defaults. Keyword ``overrides`` win over
        both the environment and the defaults.

        Args:
            **overrides: Field values that take precedence over the environment.

        Returns:
            A validated ``CollageConfig``.

        Raises:
            ValueError: If a variable cannot be parsed or a value is out of range.
        """
        values: dict = {}
        env = os.environ

        if raw := env.get(f"{_ENV_PREFIX}CANVAS"):
            values["canvas_size"] = parse_size(raw)
        if raw := env.get(f"{_ENV_PREFIX}PROBE_LIMIT"):
            values["probe_limit"] = int(raw)
        if raw := env.get(f"{_ENV_PREFIX}COMPOSITION"):
            low, high = parse_range(raw)
            values["composition_range"] = (int(low), int(high))
        if raw := env.get(f"{_ENV_PREFIX}ROTATION"):
            values["rotation_range"] = parse_range(raw)
        if raw := env.get(f"{_ENV_PREFIX}SIZE_BAND"):
            values["size_band"] = parse_range(raw)
        if raw := env.get(f"{_ENV_PREFIX}SEPARATION"):
            values["separation_factor"] = float(raw)
        if raw := env.get(f"{_ENV_PREFIX}RETRY_CAP"):
            values["retry_cap"] = int(raw)
        if raw := env.get(f"{_ENV_PREFIX}TIMEOUT"):
            values["timeout"] = None if raw.lower() == "none" else float(raw)
        if raw := env.get(f"{_ENV_PREFIX}CONTAIN"):
            values["contain"] = raw.lower() in ("1", "true", "yes", "on")
        if raw := env.get(f"{_ENV_PREFIX}BACKGROUND"):
            values["background_path"] = Path(raw)
        if raw := env.get(f"{_ENV_PREFIX}BACKGROUND_MODE"):
            values["background_mode"] = raw
        if raw := env.get(f"{_ENV_PREFIX}SEARCH_PREFIX"):
            values["search_prefix"] = raw
        if raw := env.get("OUTPUT_DIR"):
            values["output_dir"] = Path(raw)

        values.update(overrides)
        return cls(**values)


def parse_size(value: str) -> tuple[int, int]:
    """Parse a ``'WIDTHxHEIGHT'`` string into a ``(width, height)`` tuple."""
    parts = value.lower().split("x")
    if len(parts) != 2:
        raise ValueError(f"size must be WIDTHxHEIGHT, got '{value}'")
    return int(parts[0]), int(parts[1])


def parse_range(value: str) -> tuple[float, float]:
    """Parse ``'LOW:HIGH'`` (or ``'LOW..HIGH'``) into a float pair.

    A colon is used as the separator so negative bounds such as
    ``'-60:60'`` parse unambiguously.
    """
    sep = ".." if ".." in value else ":"
    parts = value.split(sep)
    if len(parts) != 2:
        raise ValueError(f"range must be LOW:HIGH, got '{value}'")
    return float(parts[0]), float(parts[1])
