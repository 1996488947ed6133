from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from ..core.errors import StorageFailure
from ..game.models import CandidateItem, GameRecord
from .cache import CacheBackend

GAME_STATE_KEY_TEMPLATE = "game:{anonymous_id}:{game_id}"
MOVIE_KEY_TEMPLATE = "movie:{game_id}"
POSTER_KEY_TEMPLATE = "poster:{game_id}"

logger = logging.getLogger(__name__)


def game_state_key(anonymous_id: str, game_id: str) -> str:
    return GAME_STATE_KEY_TEMPLATE.format(anonymous_id=anonymous_id, game_id=game_id)


def movie_key(game_id: str) -> str:
    return MOVIE_KEY_TEMPLATE.format(game_id=game_id)


def poster_key(game_id: str) -> str:
    return POSTER_KEY_TEMPLATE.format(game_id=game_id)


def _dump(model: Any) -> dict:
    return model.model_dump(mode="json", by_alias=True)


def _load_record(key: str, raw: Any) -> Optional[GameRecord]:
    if raw is None:
        return None
    try:
        return GameRecord.model_validate(raw)
    except ValidationError as exc:
        logger.error("Stored game record %s is invalid: %s", key, exc)
        raise StorageFailure(f"Stored game record {key} is invalid") from exc


def _load_answer(key: str, raw: Any) -> Optional[CandidateItem]:
    if raw is None:
        return None
    try:
        return CandidateItem.model_validate(raw)
    except ValidationError as exc:
        logger.error("Stored answer %s is invalid: %s", key, exc)
        raise StorageFailure(f"Stored answer {key} is invalid") from exc


def record_lock(cache: CacheBackend, anonymous_id: str, game_id: str) -> Any:
    return cache.lock(game_state_key(anonymous_id, game_id))


async def load_record(cache: CacheBackend, anonymous_id: str, game_id: str) -> Optional[GameRecord]:
    key = game_state_key(anonymous_id, game_id)
    return _load_record(key, await cache.get(key))


async def save_record(cache: CacheBackend, anonymous_id: str, record: GameRecord, ttl: int) -> GameRecord:
    await cache.set(game_state_key(anonymous_id, record.game_id), _dump(record), ttl)
    return record


async def create_record(cache: CacheBackend, anonymous_id: str, record: GameRecord, ttl: int) -> GameRecord:
    """Persist ``record`` unless one already exists; return whichever is stored."""

    key = game_state_key(anonymous_id, record.game_id)
    if await cache.add(key, _dump(record), ttl):
        return record
    existing = _load_record(key, await cache.get(key))
    if existing is None:
        raise StorageFailure(f"Game record {key} vanished during creation")
    return existing


async def load_answer(cache: CacheBackend, game_id: str) -> Optional[CandidateItem]:
    key = movie_key(game_id)
    return _load_answer(key, await cache.get(key))


async def bind_answer(cache: CacheBackend, game_id: str, answer: CandidateItem, ttl: int) -> CandidateItem:
    """Bind the day's answer once; concurrent callers all observe the first one."""

    key = movie_key(game_id)
    if await cache.add(key, _dump(answer), ttl):
        return answer
    existing = _load_answer(key, await cache.get(key))
    if existing is None:
        raise StorageFailure(f"Answer {key} vanished during creation")
    return existing


async def store_poster_url(cache: CacheBackend, game_id: str, url: Optional[str], ttl: int) -> None:
    await cache.set(poster_key(game_id), {"url": url}, ttl)


async def load_poster_url(cache: CacheBackend, game_id: str) -> Optional[str]:
    payload = await cache.get(poster_key(game_id))
    if isinstance(payload, dict):
        return payload.get("url")
    if isinstance(payload, str):
        return payload
    return None
