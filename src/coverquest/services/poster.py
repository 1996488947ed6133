from __future__ import annotations

import base64
import binascii
import io
import logging
from typing import Any, Optional, Tuple

import httpx
from PIL import Image, UnidentifiedImageError

from ..core.config import settings
from ..core.errors import NotFoundError, PosterRenderError
from .cache import CacheBackend

POSTER_SOURCE_KEY_TEMPLATE = "poster-image-source:{game_id}"
POSTER_VARIANT_KEY_TEMPLATE = "poster-image:{game_id}:{level}"

MAX_PIXEL_BLOCK = 40
MIN_PIXEL_BLOCK = 2

logger = logging.getLogger(__name__)


def _deserialize_cached_image(payload: Any) -> Optional[Tuple[bytes, str]]:
    if not isinstance(payload, dict):
        return None
    encoded = payload.get("data")
    if not isinstance(encoded, str):
        return None
    try:
        decoded = base64.b64decode(encoded)
    except (binascii.Error, ValueError):
        return None
    mime = payload.get("mime") or "image/jpeg"
    return decoded, mime


def _serialize_image(content: bytes, mime: str) -> dict:
    return {"data": base64.b64encode(content).decode("ascii"), "mime": mime}


def pixel_block_size(level: int) -> int:
    """Edge length of one pixel block for an intensity in 1..100."""

    return max(MIN_PIXEL_BLOCK, (level * MAX_PIXEL_BLOCK) // 100)


def pixelate(source: bytes, level: int) -> Tuple[bytes, str]:
    """Render ``source`` at pixelation ``level``.

    Level 0 means no obfuscation and returns the bytes unchanged; it never
    goes through the downscale path.
    """

    if level < 0 or level > 100:
        raise PosterRenderError("Invalid pixelation level", status_code=400)
    if level == 0:
        raise ValueError("Level 0 is a full reveal and must not be pixelated")

    block = pixel_block_size(level)
    try:
        with Image.open(io.BytesIO(source)) as poster:
            poster = poster.convert("RGB")
            width, height = poster.size
            small = poster.resize(
                (max(1, width // block), max(1, height // block)),
                resample=Image.Resampling.BILINEAR,
            )
            pixelated = small.resize((width, height), resample=Image.Resampling.NEAREST)
            output = io.BytesIO()
            pixelated.save(output, format="JPEG", quality=90, optimize=True)
    except (UnidentifiedImageError, OSError) as exc:
        raise PosterRenderError("Unable to process poster image") from exc

    return output.getvalue(), "image/jpeg"


async def load_poster_source(cache: CacheBackend, game_id: str, image_url: Optional[str]) -> Tuple[bytes, str]:
    cache_key = POSTER_SOURCE_KEY_TEMPLATE.format(game_id=game_id)
    cached_image = _deserialize_cached_image(await cache.get(cache_key))
    if cached_image:
        return cached_image

    if not image_url:
        raise NotFoundError("Poster image unavailable")

    try:
        async with httpx.AsyncClient(timeout=settings.tmdb_timeout_seconds) as client:
            response = await client.get(image_url)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Failed to fetch poster image for %s: %s", game_id, exc)
        raise PosterRenderError("Unable to fetch poster image", status_code=502) from exc

    content = response.content
    mime = response.headers.get("content-type") or "image/jpeg"
    await cache.set(cache_key, _serialize_image(content, mime), settings.game_state_ttl_seconds)
    return content, mime


async def discard_source(cache: CacheBackend, game_id: str) -> None:
    await cache.set(POSTER_SOURCE_KEY_TEMPLATE.format(game_id=game_id), None)


async def load_cached_variant(cache: CacheBackend, game_id: str, level: int) -> Optional[Tuple[bytes, str]]:
    key = POSTER_VARIANT_KEY_TEMPLATE.format(game_id=game_id, level=level)
    return _deserialize_cached_image(await cache.get(key))


async def store_variant(cache: CacheBackend, game_id: str, level: int, content: bytes, mime: str) -> None:
    key = POSTER_VARIANT_KEY_TEMPLATE.format(game_id=game_id, level=level)
    await cache.set(key, _serialize_image(content, mime), settings.game_state_ttl_seconds)
