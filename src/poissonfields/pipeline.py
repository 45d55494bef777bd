from __future__ import annotations

from contextlib import AsyncExitStack
from datetime import datetime
from pathlib import Path
from typing import Callable

import numpy as np
from loguru import logger
from PIL import Image

from poissonfields.acquisition.fetcher import Fetcher, HttpxFetcher
from poissonfields.acquisition.pool import build_candidate_pool
from poissonfields.composition.composer import compose as default_compose
from poissonfields.config import CollageConfig
from poissonfields.errors import AcquisitionError, CollageError, PublishError, RenderError
from poissonfields.layout.poisson import PoissonLayout
from poissonfields.layout.sequencer import sequence_transforms
from poissonfields.models import CollageOutput, SearchResult
from poissonfields.publishing import LocalPublisher, Publisher
from poissonfields.search.provider import SearchProvider
from poissonfields.terms import pick_term


class Pipeline:
    """One collage run: term → search → candidate pool → layout → composition → publish."""

    def __init__(
        self,
        search_provider: SearchProvider,
        fetcher: Fetcher | None = None,
        publisher: Publisher | None = None,
        config: CollageConfig | None = None,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
        compose_fn: Callable[..., CollageOutput] = default_compose,
    ) -> None:
        """Initialize the pipeline.

        Args:
            search_provider: Backend returning candidate image URLs for a query.
            fetcher: Backend downloading each candidate. A fresh
                ``HttpxFetcher`` is opened per run when not provided.
            publisher: Destination for the finished collage. Defaults to a
                ``LocalPublisher`` writing into the run directory.
            config: Run parameters. Defaults to ``CollageConfig()``.
            seed: Seed for the run's random generator. Ignored when ``rng``
                is given.
            rng: Explicit random generator shared by every sampling step.
            compose_fn: Callable rendering the layout onto a canvas.
        """
        self.search_provider = search_provider
        self.fetcher = fetcher
        self.publisher = publisher
        self.config = config or CollageConfig()
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.compose_fn = compose_fn

    async def run(self, term: str | None = None, publish: bool = True) -> CollageOutput:
        """Execute the full pipeline and return the composed collage.

        Pipeline stages:
        1. ``pick_term`` — choose a noun unless ``term`` is given.
        2. ``search_provider.search`` — query ``"<prefix> <term>"``.
        3. ``build_candidate_pool`` — fetch and keep transparent-cornered images.
        4. ``sequence_transforms`` — choose images, rotation and scales.
        5. ``PoissonLayout.place`` — assign non-overlapping centers.
        6. ``compose_fn`` — render the canvas and encode it.
        7. ``publisher.publish`` — hand off the buffer with its caption.

        Args:
            term: Subject noun. A random noun is drawn when omitted.
            publish: Skip stage 7 when ``False``.

        Returns:
            The composed ``CollageOutput``; ``label`` holds the term.

        Raises:
            AcquisitionError: Search or fetching failed for the whole run.
            InsufficientCandidatesError: No suitable image was found.
            RenderError: The canvas could not be drawn or encoded.
            PublishError: The publisher failed.
        """
        run_dir = self.config.output_dir / datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        run_dir.mkdir(parents=True, exist_ok=True)

        log_sink_id = logger.add(
            run_dir / "pipeline.log",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {message}",
            level="DEBUG",
            encoding="utf-8",
        )

        try:
            return await self._run_stages(term, publish, run_dir)
        finally:
            logger.remove(log_sink_id)

    async def _run_stages(
        self, term: str | None, publish: bool, run_dir: Path
    ) -> CollageOutput:
        cfg = self.config

        # Stage 1: Pick the subject.
        if term is None:
            term = pick_term(self.rng)
        logger.info("Stage 1 — Using term {!r}.", term)

        # Stage 2: Search.
        query = f"{cfg.search_prefix} {term}".strip()
        logger.info("Stage 2 — Searching for {!r}...", query)
        results = await self._search(query)
        sources = self._sample_sources(results)
        logger.info(
            "Stage 2 complete — {} result(s), probing {}.", len(results), len(sources)
        )

        # Stage 3: Build the candidate pool.
        logger.info("Stage 3 — Probing {} source(s) for transparent corners...", len(sources))
        async with AsyncExitStack() as stack:
            fetcher = self.fetcher
            if fetcher is None:
                fetcher = await stack.enter_async_context(
                    HttpxFetcher(cache_dir=run_dir / "downloads")
                )
            candidates = await build_candidate_pool(
                sources, fetcher, probe_limit=cfg.probe_limit, timeout=cfg.timeout
            )
        logger.info(
            "Stage 3 complete — {} suitable candidate(s), {} dropped.",
            len(candidates),
            len(candidates.dropped),
        )
        for warning in candidates.dropped:
            logger.debug("  dropped {}: {}", warning.source, warning.reason)

        # Stage 4: Choose images and their transforms.
        sequence = sequence_transforms(
            candidates,
            self.rng,
            composition_range=cfg.composition_range,
            rotation_range=cfg.rotation_range,
            size_band=cfg.size_band,
        )
        logger.info(
            "Stage 4 complete — {} image(s) selected, rotation {:.1f}°.",
            len(sequence),
            sequence[0].transform.rotation,
        )
        for item in sequence:
            logger.debug(
                "  {} ({}×{}) scale={:.3f}",
                item.asset.source,
                item.asset.width,
                item.asset.height,
                item.transform.scale,
            )

        # Stage 5: Layout.
        width, height = cfg.canvas_size
        engine = PoissonLayout(
            width=width,
            height=height,
            separation_factor=cfg.separation_factor,
            retry_cap=cfg.retry_cap,
            contain=cfg.contain,
        )
        layout = engine.place(sequence, self.rng)
        logger.info(
            "Stage 5 complete — {} image(s) placed, {} degraded, {} separation check(s).",
            len(layout.placed),
            len(layout.degraded),
            layout.checks,
        )

        # Stage 6: Compose.
        logger.info("Stage 6 — Composing {}×{} canvas...", width, height)
        collage = self.compose_fn(
            layout,
            cfg.canvas_size,
            background=self._load_background(),
            background_mode=cfg.background_mode,
            background_scale=cfg.background_scale,
            background_color=cfg.background_color,
            label=term,
        )
        logger.info("Stage 6 complete — {} byte PNG.", len(collage.buffer))

        # Stage 7: Publish.
        if publish:
            publisher = self.publisher or LocalPublisher(cfg.output_dir, run_dir=run_dir)
            logger.info("Stage 7 — Publishing {!r}...", term)
            try:
                await publisher.publish(collage, term)
            except Exception as exc:
                raise PublishError(f"publishing {term!r} failed: {exc}") from exc

        logger.info("Pipeline complete. Run artifacts saved to {}", run_dir)
        return collage

    async def _search(self, query: str) -> list[SearchResult]:
        try:
            return await self.search_provider.search(query)
        except CollageError:
            raise
        except Exception as exc:
            raise AcquisitionError(f"search for {query!r} failed: {exc}") from exc

    def _sample_sources(self, results: list[SearchResult]) -> list[SearchResult]:
        """Draw up to ``probe_limit`` results at random, without replacement."""
        k = min(self.config.probe_limit, len(results))
        if k == 0:
            return []
        indices = self.rng.choice(len(results), size=k, replace=False)
        return [results[int(i)] for i in indices]

    def _load_background(self) -> Image.Image | None:
        path = self.config.background_path
        if path is None:
            return None
        try:
            img = Image.open(path)
            img.load()
        except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
            raise RenderError(f"cannot load background {path}: {exc}") from exc
        return img
