from __future__ import annotations

import asyncio
import struct
import threading
import zlib
from io import BytesIO
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from PIL import Image

from poissonfields.acquisition.classifier import classify_bytes, decode_asset, is_suitable
from poissonfields.acquisition.fetcher import HttpxFetcher
from poissonfields.acquisition.pool import build_candidate_pool
from poissonfields.errors import AcquisitionError, AssetDecodeError, InsufficientCandidatesError
from poissonfields.models import ImageAsset, SearchResult


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_cutout(size: tuple[int, int] = (40, 30), opaque_corner: tuple[int, int] | None = None) -> Image.Image:
    """Transparent RGBA image with an opaque block in the middle."""
    w, h = size
    img = Image.new("RGBA", size, (0, 0, 0, 0))
    img.paste((200, 30, 30, 255), (w // 4, h // 4, 3 * w // 4, 3 * h // 4))
    if opaque_corner is not None:
        img.putpixel(opaque_corner, (200, 30, 30, 255))
    return img


def _png_bytes(img: Image.Image) -> bytes:
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _suitable_bytes() -> bytes:
    return _png_bytes(_make_cutout())


def _unsuitable_bytes() -> bytes:
    return _png_bytes(Image.new("RGBA", (40, 30), (10, 20, 30, 255)))


def _broken_png_bytes() -> bytes:
    """64×64 PNG that opens cleanly but whose pixel data runs into a malformed chunk."""
    data = _png_bytes(Image.frombytes("RGBA", (64, 64), bytes(range(256)) * 64))
    idat = data.index(b"IDAT")
    (length,) = struct.unpack(">I", data[idat - 4 : idat])
    chunk = b"IDAT" + data[idat + 4 : idat + 4 + length // 2]
    return (
        data[: idat - 4]
        + struct.pack(">I", len(chunk) - 4)
        + chunk
        + struct.pack(">I", zlib.crc32(chunk))
        + struct.pack(">I", 0)
        + b"\x00\x01\x02\x03"
    )


class _FakeFetcher:
    """Fetcher returning canned payloads; exceptions in the map are raised."""

    def __init__(self, payloads: dict[str, bytes | Exception], delay: float = 0.0) -> None:
        self.payloads = payloads
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            value = self.payloads[url]
            if isinstance(value, Exception):
                raise value
            return value
        finally:
            self.in_flight -= 1


# ---------------------------------------------------------------------------
# Transparency classifier
# ---------------------------------------------------------------------------


class TestClassifier:
    def test_all_corners_transparent_is_suitable(self):
        asset = ImageAsset.from_image(_make_cutout())
        assert is_suitable(asset)

    @pytest.mark.parametrize("corner", [(0, 0), (0, 29), (39, 0), (39, 29)])
    def test_any_opaque_corner_is_unsuitable(self, corner):
        asset = ImageAsset.from_image(_make_cutout(opaque_corner=corner))
        assert not is_suitable(asset)

    def test_partially_transparent_corner_is_unsuitable(self):
        img = _make_cutout()
        img.putpixel((0, 0), (0, 0, 0, 1))
        assert not is_suitable(ImageAsset.from_image(img))

    def test_opaque_edge_pixel_away_from_corners_is_ignored(self):
        img = _make_cutout()
        img.putpixel((20, 0), (255, 255, 255, 255))
        assert is_suitable(ImageAsset.from_image(img))

    def test_single_pixel_image(self):
        img = Image.new("RGBA", (1, 1), (0, 0, 0, 0))
        assert is_suitable(ImageAsset.from_image(img))

    def test_rgb_image_has_no_transparency(self):
        asset = decode_asset(_png_bytes(Image.new("RGB", (10, 10), "white")))
        assert asset.image.mode == "RGBA"
        assert not is_suitable(asset)

    def test_decode_records_source_and_size(self):
        asset = decode_asset(_suitable_bytes(), source="https://example.com/a.png")
        assert asset.source == "https://example.com/a.png"
        assert (asset.width, asset.height) == (40, 30)

    def test_decode_garbage_raises(self):
        with pytest.raises(AssetDecodeError):
            decode_asset(b"definitely not an image")

    def test_decode_empty_raises(self):
        with pytest.raises(AssetDecodeError):
            decode_asset(b"")

    def test_classify_bytes_reports_false_on_decode_failure(self):
        assert classify_bytes(b"garbage", "bad.png") == (None, False)

    def test_decode_broken_png_chunk_raises(self):
        with pytest.raises(AssetDecodeError):
            decode_asset(_broken_png_bytes(), "broken.png")

    def test_classify_bytes_reports_false_on_broken_png(self):
        assert classify_bytes(_broken_png_bytes(), "broken.png") == (None, False)

    def test_classify_bytes_returns_asset_and_verdict(self):
        asset, verdict = classify_bytes(_suitable_bytes(), "ok.png")
        assert asset is not None
        assert verdict is True


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


def _mock_response(content: bytes) -> MagicMock:
    resp = MagicMock()
    resp.status_code = 200
    resp.content = content
    resp.raise_for_status = MagicMock()
    return resp


class TestHttpxFetcher:
    async def test_fetch_returns_body(self):
        client = AsyncMock()
        client.get = AsyncMock(return_value=_mock_response(b"payload"))
        async with HttpxFetcher(client=client) as fetcher:
            assert await fetcher.fetch("https://example.com/x.png") == b"payload"
        client.get.assert_awaited_once_with("https://example.com/x.png")
        client.aclose.assert_not_awaited()

    async def test_owned_client_is_closed(self):
        with patch("poissonfields.acquisition.fetcher.httpx.AsyncClient") as mock_client_cls:
            mock_client = AsyncMock()
            mock_client.get = AsyncMock(return_value=_mock_response(b"data"))
            mock_client_cls.return_value = mock_client

            async with HttpxFetcher() as fetcher:
                await fetcher.fetch("https://example.com/x.png")

        mock_client.aclose.assert_awaited_once()

    async def test_cache_dir_receives_numbered_files(self, tmp_path):
        client = AsyncMock()
        client.get = AsyncMock(side_effect=[_mock_response(b"one"), _mock_response(b"two")])
        async with HttpxFetcher(cache_dir=tmp_path / "out", client=client) as fetcher:
            await fetcher.fetch("https://example.com/a.png")
            await fetcher.fetch("https://example.com/b.png")
        assert (tmp_path / "out" / "1.png").read_bytes() == b"one"
        assert (tmp_path / "out" / "2.png").read_bytes() == b"two"

    async def test_http_error_propagates(self):
        client = AsyncMock()
        client.get = AsyncMock(side_effect=httpx.HTTPError("fail"))
        async with HttpxFetcher(client=client) as fetcher:
            with pytest.raises(httpx.HTTPError):
                await fetcher.fetch("https://example.com/x.png")

    async def test_fetch_outside_context_raises(self):
        with pytest.raises(RuntimeError):
            await HttpxFetcher().fetch("https://example.com/x.png")


# ---------------------------------------------------------------------------
# Candidate pool
# ---------------------------------------------------------------------------


class TestCandidatePool:
    async def test_keeps_suitable_assets_in_source_order(self):
        fetcher = _FakeFetcher(
            {
                "a": _suitable_bytes(),
                "b": _unsuitable_bytes(),
                "c": httpx.ConnectError("down"),
                "d": b"corrupt",
                "e": _suitable_bytes(),
            }
        )
        pool = await build_candidate_pool(["a", "b", "c", "d", "e"], fetcher)

        assert [asset.source for asset in pool] == ["a", "e"]
        reasons = {w.source: w.reason for w in pool.dropped}
        assert reasons["b"] == "corners not transparent"
        assert reasons["c"].startswith("fetch failed")
        assert reasons["d"] == "decode failed"

    async def test_broken_png_drops_only_that_source(self):
        fetcher = _FakeFetcher({"good": _suitable_bytes(), "bad": _broken_png_bytes()})
        pool = await build_candidate_pool(["good", "bad"], fetcher)

        assert [asset.source for asset in pool] == ["good"]
        assert [(w.source, w.reason) for w in pool.dropped] == [("bad", "decode failed")]

    async def test_members_are_suitable_and_bounded(self):
        urls = [f"u{i}" for i in range(15)]
        fetcher = _FakeFetcher({u: _suitable_bytes() for u in urls})
        pool = await build_candidate_pool(urls, fetcher, probe_limit=10)

        assert len(pool) <= 10
        assert len(fetcher.calls) == 10
        assert sorted(fetcher.calls) == sorted(urls[:10])
        assert all(is_suitable(asset) for asset in pool)

    async def test_accepts_search_results(self):
        fetcher = _FakeFetcher({"https://img/1.png": _suitable_bytes()})
        pool = await build_candidate_pool(
            [SearchResult(url="https://img/1.png", content_type="png")], fetcher
        )
        assert pool[0].source == "https://img/1.png"

    async def test_all_unsuitable_raises_insufficient_candidates(self):
        urls = [f"u{i}" for i in range(10)]
        fetcher = _FakeFetcher({u: _unsuitable_bytes() for u in urls})
        with pytest.raises(InsufficientCandidatesError) as excinfo:
            await build_candidate_pool(urls, fetcher, probe_limit=10)
        assert len(excinfo.value.dropped) == 10

    async def test_no_sources_raises_insufficient_candidates(self):
        with pytest.raises(InsufficientCandidatesError):
            await build_candidate_pool([], _FakeFetcher({}))

    async def test_overall_timeout_raises_acquisition_error(self):
        fetcher = _FakeFetcher({"slow": _suitable_bytes()}, delay=1.0)
        with pytest.raises(AcquisitionError):
            await build_candidate_pool(["slow"], fetcher, timeout=0.01)

    async def test_concurrency_is_bounded(self):
        urls = [f"u{i}" for i in range(6)]
        fetcher = _FakeFetcher({u: _suitable_bytes() for u in urls}, delay=0.01)
        pool = await build_candidate_pool(urls, fetcher, concurrency=2)
        assert fetcher.max_in_flight <= 2
        assert len(pool) == 6

    async def test_classification_runs_off_the_event_loop(self):
        loop_thread = threading.get_ident()
        threads: list[int] = []

        def recording_classify(data, source=""):
            threads.append(threading.get_ident())
            return classify_bytes(data, source)

        fetcher = _FakeFetcher({"a": _suitable_bytes(), "b": _suitable_bytes()})
        with patch("poissonfields.acquisition.pool.classify_bytes", side_effect=recording_classify):
            pool = await build_candidate_pool(["a", "b"], fetcher)

        assert len(pool) == 2
        assert len(threads) == 2
        assert loop_thread not in threads

    async def test_invalid_probe_limit(self):
        with pytest.raises(ValueError):
            await build_candidate_pool(["a"], _FakeFetcher({}), probe_limit=0)
