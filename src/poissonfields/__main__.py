from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

import numpy as np
from loguru import logger

from poissonfields.config import CollageConfig, parse_size
from poissonfields.errors import CollageError
from poissonfields.pipeline import Pipeline
from poissonfields.search.archive import InternetArchiveSearch
from poissonfields.search.bing import BingImageSearch
from poissonfields.search.provider import SearchProvider


def _parse_canvas(value: str) -> tuple[int, int]:
    """Parse a 'WIDTHxHEIGHT' string into a (width, height) tuple."""
    try:
        return parse_size(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _make_provider(name: str | None) -> SearchProvider:
    """Return the named search provider, preferring Bing when a key is configured."""
    if name is None:
        name = "bing" if os.environ.get("BING_KEY") else "archive"
    if name == "bing":
        return BingImageSearch()
    return InternetArchiveSearch()


async def _run(
    term: str | None,
    config: CollageConfig,
    provider: str | None,
    rng: np.random.Generator,
) -> None:
    pipeline = Pipeline(search_provider=_make_provider(provider), config=config, rng=rng)
    await pipeline.run(term)


def cli() -> None:
    """Entry point for the ``poissonfields`` console script."""
    parser = argparse.ArgumentParser(
        description="Generate a collage of transparent images for a random noun.",
    )
    parser.add_argument("--term", help="Subject noun (default: random)")
    parser.add_argument("--seed", type=int, help="Seed for reproducible runs")
    parser.add_argument(
        "--provider",
        choices=["bing", "archive"],
        help="Image search backend (default: bing if BING_KEY is set, else archive)",
    )
    parser.add_argument("--canvas", type=_parse_canvas, help="Canvas size as WIDTHxHEIGHT")
    parser.add_argument("--background", type=Path, help="Background image file")
    parser.add_argument(
        "--chance",
        type=float,
        default=100.0,
        help="Only run this percentage of the time (default: 100)",
    )
    args = parser.parse_args()

    overrides: dict = {}
    if args.canvas is not None:
        overrides["canvas_size"] = args.canvas
    if args.background is not None:
        overrides["background_path"] = args.background
    config = CollageConfig.from_env(**overrides)

    rng = np.random.default_rng(args.seed)
    if rng.uniform(0, 100) >= args.chance:
        logger.info("Skipping...")
        sys.exit(0)

    try:
        asyncio.run(_run(args.term, config, args.provider, rng))
    except CollageError as exc:
        logger.error("Run failed: {}", exc)
        sys.exit(1)


if __name__ == "__main__":
    cli()
