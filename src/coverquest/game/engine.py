from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from ..core.config import settings
from ..core.errors import (
    EnrichmentFailure,
    GameAlreadyCompleteError,
    GameNotCompleteError,
    InvalidRequestError,
    NotFoundError,
    PoolExhaustionError,
    PosterRenderError,
    StorageFailure,
    UpstreamError,
)
from ..services import game_store, poster, tmdb
from ..services.cache import CacheBackend, get_cache
from ..services.scores import submit_score
from ..services.tmdb import Movie
from . import state
from .models import CandidateItem, ClientGameState, ClientGuess, GameRecord, Guess, GuessSubmission
from .relatedness import is_related
from .reveal import FULLY_REVEALED, PosterRevealMachine, reveal_level
from .selection import daily_identifier, select_daily

MAX_ANONYMOUS_ID_LENGTH = 128

DISCOVER_CACHE_KEY_TEMPLATE = "tmdb:discover:{game_id}"
MOVIE_CACHE_KEY_TEMPLATE = "tmdb:movie:{movie_id}"

logger = logging.getLogger(__name__)


async def _get_cache() -> CacheBackend:
    return await get_cache(settings.redis_url)


def validate_anonymous_id(anonymous_id: Optional[str]) -> str:
    value = (anonymous_id or "").strip()
    if not value:
        raise InvalidRequestError("Missing anonymousId")
    if len(value) > MAX_ANONYMOUS_ID_LENGTH:
        raise InvalidRequestError("anonymousId is too long")
    return value


def require_today(game_id: Optional[str], now: Optional[datetime] = None) -> str:
    """Reject any game id other than the server's current UTC day."""

    if not game_id:
        raise InvalidRequestError("Missing gameId")
    if game_id != daily_identifier(now):
        raise InvalidRequestError("Invalid gameId")
    return game_id


def build_candidate_pool(movies: Sequence[Movie]) -> List[Movie]:
    """Keep movies with a poster, first occurrence of each id, in provider order."""

    seen: set[int] = set()
    pool: List[Movie] = []
    for movie in movies:
        if not movie.poster_path or movie.id in seen:
            continue
        seen.add(movie.id)
        pool.append(movie)
    return pool


async def _load_discover_pool(game_id: str, cache: CacheBackend) -> List[Movie]:
    cache_key = DISCOVER_CACHE_KEY_TEMPLATE.format(game_id=game_id)

    async def creator() -> List[dict]:
        movies = await tmdb.discover_pool(tmdb.default_discover_filters())
        return [movie.model_dump(mode="json") for movie in movies]

    raw_movies = await cache.remember(cache_key, settings.metadata_cache_ttl_seconds, creator)
    return [Movie.model_validate(item) for item in raw_movies]


async def _load_candidate(movie_id: int, cache: CacheBackend) -> CandidateItem:
    cache_key = MOVIE_CACHE_KEY_TEMPLATE.format(movie_id=movie_id)

    async def creator() -> dict:
        candidate = await tmdb.load_candidate(movie_id)
        return candidate.model_dump(mode="json", by_alias=True)

    raw = await cache.remember(cache_key, settings.metadata_cache_ttl_seconds, creator)
    return CandidateItem.model_validate(raw)


async def _choose_daily_answer(game_id: str, cache: CacheBackend) -> CandidateItem:
    pool = build_candidate_pool(await _load_discover_pool(game_id, cache))
    if not pool:
        raise PoolExhaustionError("No movies with posters found")
    selected = select_daily(game_id, pool, allow_reseed=settings.allow_reseed)
    return await _load_candidate(selected.id, cache)


async def ensure_daily_answer(game_id: str, cache: Optional[CacheBackend] = None) -> CandidateItem:
    """Return the answer bound to ``game_id``, choosing and binding it if needed."""

    cache = cache or await _get_cache()
    existing = await game_store.load_answer(cache, game_id)
    if existing is not None:
        return existing

    async with cache.lock(game_store.movie_key(game_id)):
        existing = await game_store.load_answer(cache, game_id)
        if existing is not None:
            return existing
        answer = await _choose_daily_answer(game_id, cache)
        ttl = settings.game_state_ttl_seconds
        bound = await game_store.bind_answer(cache, game_id, answer, ttl)
        await game_store.store_poster_url(cache, game_id, tmdb.poster_url(bound.poster_path), ttl)
    logger.info("Bound movie %s as the answer for %s", bound.id, game_id)
    return bound


async def get_or_create_game(
    anonymous_id: str,
    game_id: str,
    *,
    now: Optional[datetime] = None,
) -> GameRecord:
    anonymous_id = validate_anonymous_id(anonymous_id)
    require_today(game_id, now)
    cache = await _get_cache()

    record = await game_store.load_record(cache, anonymous_id, game_id)
    if record is not None:
        return record

    answer = await ensure_daily_answer(game_id, cache)
    initial = state.create_initial_record(game_id, answer)
    return await game_store.create_record(
        cache, anonymous_id, initial, settings.game_state_ttl_seconds
    )


def build_client_state(
    record: GameRecord,
    answer: Optional[CandidateItem],
    poster_url: Optional[str],
) -> ClientGameState:
    guesses: List[ClientGuess] = []
    for guess in record.guesses:
        correct = state.is_exact_match(guess, record)
        related = False
        if not correct and answer is not None:
            related = is_related(
                guess,
                answer,
                genre_threshold=settings.relatedness_genre_threshold,
                match_production=settings.relatedness_match_production,
            )
        guesses.append(
            ClientGuess.model_validate({**guess.model_dump(), "correct": correct, "related": related})
        )
    return ClientGameState(
        game_id=record.game_id,
        guesses=guesses,
        current_guess=record.current_guess,
        is_complete=record.is_complete,
        won=record.won,
        status=state.status_of(record).phase,
        score=record.score,
        pixelation_level=reveal_level(record),
        poster_url=poster_url,
    )


async def load_client_state(
    anonymous_id: str,
    game_id: str,
    *,
    now: Optional[datetime] = None,
) -> ClientGameState:
    record = await get_or_create_game(anonymous_id, game_id, now=now)
    cache = await _get_cache()
    answer = await game_store.load_answer(cache, game_id)
    poster_url = await game_store.load_poster_url(cache, game_id)
    return build_client_state(record, answer, poster_url)


async def enrich_guess(movie_id: int, title: str, cache: CacheBackend) -> Guess:
    """Attach franchise/director/genre data to a guess when TMDB cooperates."""

    try:
        candidate = await _load_candidate(movie_id, cache)
    except (EnrichmentFailure, NotFoundError, UpstreamError) as exc:
        logger.warning("Could not enrich guess %s (%r): %s", movie_id, title, exc)
        return Guess(title=title, movie_id=movie_id)
    return Guess(
        title=title,
        movie_id=movie_id,
        year=candidate.year,
        franchise_id=candidate.franchise_id,
        director_id=candidate.director_id,
        genre_ids=candidate.genre_ids,
        production_company_ids=candidate.production_company_ids,
    )


async def _record_score(record: GameRecord, anonymous_id: str) -> None:
    try:
        await submit_score(record, anonymous_id)
    except StorageFailure as exc:
        logger.warning(
            "Failed to store score for %s on %s: %s", anonymous_id, record.game_id, exc
        )


async def submit_guess(
    submission: GuessSubmission,
    *,
    now: Optional[datetime] = None,
) -> ClientGameState:
    anonymous_id = validate_anonymous_id(submission.anonymous_id)
    game_id = require_today(submission.game_id, now)
    title = submission.guess.title.strip()
    if not title:
        raise InvalidRequestError("Guess title cannot be empty")

    cache = await _get_cache()
    current = await game_store.load_record(cache, anonymous_id, game_id)
    if current is None:
        raise NotFoundError("Game not found")
    if current.is_complete:
        raise GameAlreadyCompleteError("Game already complete")

    guess = await enrich_guess(submission.guess.movie_id, title, cache)

    async with game_store.record_lock(cache, anonymous_id, game_id):
        record = await game_store.load_record(cache, anonymous_id, game_id)
        answer = await game_store.load_answer(cache, game_id)
        if record is None or answer is None:
            raise NotFoundError("Game not found")
        updated = state.submit_guess(record, guess, state.is_exact_match(guess, record))
        await game_store.save_record(cache, anonymous_id, updated, settings.game_state_ttl_seconds)

    if updated.is_complete:
        await _record_score(updated, anonymous_id)

    poster_url = await game_store.load_poster_url(cache, game_id)
    return build_client_state(updated, answer, poster_url)


async def reveal_answer(
    anonymous_id: str,
    game_id: str,
    *,
    now: Optional[datetime] = None,
) -> CandidateItem:
    """Return the day's movie, but only to a player who has finished the game."""

    anonymous_id = validate_anonymous_id(anonymous_id)
    require_today(game_id, now)
    cache = await _get_cache()
    record = await game_store.load_record(cache, anonymous_id, game_id)
    if record is None:
        raise NotFoundError("Game not found")
    if not record.is_complete:
        raise GameNotCompleteError("Game not complete")
    answer = await game_store.load_answer(cache, game_id)
    if answer is None:
        raise NotFoundError("Movie not found")
    return answer


async def render_poster(
    anonymous_id: str,
    game_id: str,
    *,
    now: Optional[datetime] = None,
) -> Tuple[bytes, str]:
    anonymous_id = validate_anonymous_id(anonymous_id)
    require_today(game_id, now)
    cache = await _get_cache()
    record = await game_store.load_record(cache, anonymous_id, game_id)
    if record is None:
        raise NotFoundError("Game not found")

    level = reveal_level(record)
    cached = await poster.load_cached_variant(cache, game_id, level)
    if cached:
        return cached

    image_url = await game_store.load_poster_url(cache, game_id)
    machine: PosterRevealMachine[Tuple[bytes, str]] = PosterRevealMachine(
        max_attempts=settings.poster_max_attempts
    )
    if level == FULLY_REVEALED:
        machine.reveal(await poster.load_poster_source(cache, game_id, image_url))
    else:
        source: Optional[bytes] = None
        while machine.should_attempt:
            try:
                if source is None:
                    source, _ = await poster.load_poster_source(cache, game_id, image_url)
                machine.record_success(poster.pixelate(source, level))
            except PosterRenderError as exc:
                machine.record_failure(exc)
                source = None
                await poster.discard_source(cache, game_id)

    rendered = machine.present()
    if rendered is None:
        raise PosterRenderError("Poster unavailable", status_code=503)

    content, mime = rendered
    await poster.store_variant(cache, game_id, level, content, mime)
    return content, mime
