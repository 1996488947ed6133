from __future__ import annotations

import io
import types

import httpx as real_httpx
import pytest
from PIL import Image

from coverquest.core.errors import NotFoundError, PosterRenderError
from coverquest.services import poster
from coverquest.services.cache import InMemoryCache


def _striped_png(width: int = 80, height: int = 120) -> bytes:
    image = Image.new("RGB", (width, height))
    for x in range(width):
        for y in range(height):
            image.putpixel((x, y), (255, 0, 0) if (x // 2 + y // 2) % 2 else (0, 0, 255))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def test_block_size_grows_with_level() -> None:
    assert poster.pixel_block_size(1) == 2
    assert poster.pixel_block_size(15) == 6
    assert poster.pixel_block_size(80) == 32
    assert poster.pixel_block_size(100) == 40


def test_pixelate_keeps_dimensions_and_returns_jpeg() -> None:
    content, mime = poster.pixelate(_striped_png(), 80)

    assert mime == "image/jpeg"
    with Image.open(io.BytesIO(content)) as rendered:
        assert rendered.format == "JPEG"
        assert rendered.size == (80, 120)


def test_pixelate_rejects_full_reveal_level() -> None:
    with pytest.raises(ValueError):
        poster.pixelate(_striped_png(), 0)


def test_pixelate_rejects_out_of_range_level() -> None:
    with pytest.raises(PosterRenderError) as excinfo:
        poster.pixelate(_striped_png(), 101)
    assert excinfo.value.status_code == 400


def test_pixelate_rejects_garbage() -> None:
    with pytest.raises(PosterRenderError):
        poster.pixelate(b"not an image", 60)


@pytest.mark.asyncio
async def test_source_is_downloaded_once(monkeypatch: pytest.MonkeyPatch) -> None:
    cache = InMemoryCache()
    source = _striped_png()
    call_count = {"value": 0}

    class FakeResponse:
        def __init__(self) -> None:
            self.content = source
            self.headers = {"content-type": "image/png"}

        def raise_for_status(self) -> None:
            return None

    class FakeAsyncClient:
        def __init__(self, *args, **kwargs) -> None:
            pass

        async def __aenter__(self):
            call_count["value"] += 1
            return self

        async def __aexit__(self, exc_type, exc, tb) -> None:
            return None

        async def get(self, url: str) -> FakeResponse:
            return FakeResponse()

    mock_httpx = types.SimpleNamespace(AsyncClient=FakeAsyncClient, HTTPError=real_httpx.HTTPError)
    monkeypatch.setattr(poster, "httpx", mock_httpx)

    first = await poster.load_poster_source(cache, "2025-06-15", "https://image.example/p.png")
    second = await poster.load_poster_source(cache, "2025-06-15", "https://image.example/p.png")

    assert first == (source, "image/png")
    assert second == first
    assert call_count["value"] == 1

    await poster.discard_source(cache, "2025-06-15")
    await poster.load_poster_source(cache, "2025-06-15", "https://image.example/p.png")
    assert call_count["value"] == 2


@pytest.mark.asyncio
async def test_download_failure_is_a_render_error(monkeypatch: pytest.MonkeyPatch) -> None:
    class FailingAsyncClient:
        def __init__(self, *args, **kwargs) -> None:
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb) -> None:
            return None

        async def get(self, url: str):
            raise real_httpx.ConnectError("offline")

    mock_httpx = types.SimpleNamespace(AsyncClient=FailingAsyncClient, HTTPError=real_httpx.HTTPError)
    monkeypatch.setattr(poster, "httpx", mock_httpx)

    with pytest.raises(PosterRenderError) as excinfo:
        await poster.load_poster_source(InMemoryCache(), "2025-06-15", "https://image.example/p.png")
    assert excinfo.value.status_code == 502


@pytest.mark.asyncio
async def test_missing_url_is_not_found() -> None:
    with pytest.raises(NotFoundError):
        await poster.load_poster_source(InMemoryCache(), "2025-06-15", None)


@pytest.mark.asyncio
async def test_variants_are_cached_per_level() -> None:
    cache = InMemoryCache()
    await poster.store_variant(cache, "2025-06-15", 60, b"jpeg-bytes", "image/jpeg")

    assert await poster.load_cached_variant(cache, "2025-06-15", 60) == (b"jpeg-bytes", "image/jpeg")
    assert await poster.load_cached_variant(cache, "2025-06-15", 40) is None
