from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Protocol

from loguru import logger

from poissonfields.models import CollageOutput


class Publisher(Protocol):
    """Protocol for destinations that receive a finished collage.

    Publishing is attempted once. Implementations raise on failure and the
    pipeline does not retry.
    """

    async def publish(self, collage: CollageOutput, caption: str) -> Path | None:
        """Publish ``collage`` with ``caption``; return a location if one exists."""
        ...


def save_run(
    collage: CollageOutput,
    caption: str,
    output_dir: str | Path,
    run_dir: Path | None = None,
) -> Path:
    """Save a collage and its metadata to a timestamped subdirectory.

    Creates ``{output_dir}/{YYYY-MM-DD_HH-MM-SS}/`` containing
    ``collage.png`` (the already-encoded buffer) and ``metadata.json``
    describing every placed image.

    Args:
        collage: The composed collage output.
        caption: Caption published alongside the image.
        output_dir: Base directory for runs.
        run_dir: Pre-created run directory. When provided, ``output_dir``
            is ignored.

    Returns:
        Path to the run directory.
    """
    timestamp = datetime.now()
    if run_dir is None:
        run_dir = Path(output_dir) / timestamp.strftime("%Y-%m-%d_%H-%M-%S")
    run_dir.mkdir(parents=True, exist_ok=True)

    (run_dir / "collage.png").write_bytes(collage.buffer)

    metadata = {
        "timestamp": timestamp.strftime("%Y-%m-%dT%H:%M:%S"),
        "label": collage.label,
        "caption": caption,
        "canvas_size": [collage.width, collage.height],
        "placements": collage.placements,
    }
    (run_dir / "metadata.json").write_text(json.dumps(metadata, indent=2) + "\n")

    return run_dir


class LocalPublisher:
    """Publisher that writes each collage to a run directory on disk.

    Args:
        output_dir: Base directory; each run gets a timestamped subdirectory.
        run_dir: Fixed directory to write into instead of a new timestamped one.
    """

    def __init__(self, output_dir: Path | str = Path("output"), run_dir: Path | None = None) -> None:
        self.output_dir = Path(output_dir)
        self.run_dir = run_dir

    async def publish(self, collage: CollageOutput, caption: str) -> Path:
        path = save_run(collage, caption, self.output_dir, run_dir=self.run_dir)
        logger.info("Published {!r} to {}", caption, path)
        return path
