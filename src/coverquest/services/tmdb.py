from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, Field, ValidationError

from ..core.config import settings
from ..core.errors import ConfigurationError, EnrichmentFailure, NotFoundError, UpstreamError
from ..game.models import CandidateItem

logger = logging.getLogger(__name__)

SEARCH_MAX_PAGES = 3

ModelT = TypeVar("ModelT", bound=BaseModel)


class Genre(BaseModel):
    id: int
    name: Optional[str] = None


class ProductionCompany(BaseModel):
    id: int
    name: Optional[str] = None


class Collection(BaseModel):
    id: int
    name: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None


class MovieSearchResult(BaseModel):
    id: int
    title: str
    release_date: Optional[str] = None
    poster_path: Optional[str] = None
    popularity: Optional[float] = None
    belongs_to_collection: Optional[Collection] = None


class Movie(BaseModel):
    id: int
    title: str
    release_date: Optional[str] = None
    poster_path: Optional[str] = None
    overview: Optional[str] = None
    popularity: Optional[float] = None
    vote_count: Optional[int] = None
    vote_average: Optional[float] = None
    belongs_to_collection: Optional[Collection] = None
    genres: List[Genre] = Field(default_factory=list)
    genre_ids: List[int] = Field(default_factory=list)
    production_companies: List[ProductionCompany] = Field(default_factory=list)
    director_id: Optional[int] = None


class CrewMember(BaseModel):
    id: int
    job: Optional[str] = None
    name: Optional[str] = None


class Credits(BaseModel):
    id: Optional[int] = None
    crew: List[CrewMember] = Field(default_factory=list)


class DiscoverFilters(BaseModel):
    min_vote_count: int = 600
    min_vote_average: float = 4.5
    min_release_date: Optional[date] = None
    sort_by: str = "popularity.desc"
    pages: int = 3


def default_discover_filters(today: Optional[date] = None) -> DiscoverFilters:
    reference = today or date.today()
    floor_year = reference.year - max(settings.pool_release_window_years, 0)
    return DiscoverFilters(
        min_vote_count=settings.pool_min_vote_count,
        min_vote_average=settings.pool_min_vote_average,
        min_release_date=date(floor_year, 1, 1),
        pages=max(1, settings.pool_pages),
    )


def _auth_headers() -> Dict[str, str]:
    if not settings.tmdb_api_key:
        raise ConfigurationError("TMDB API key not configured")
    return {
        "Authorization": f"Bearer {settings.tmdb_api_key}",
        "Content-Type": "application/json",
    }


async def tmdb_request(path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    headers = _auth_headers()
    url = f"{settings.tmdb_api_base.rstrip('/')}/{path.lstrip('/')}"
    try:
        async with httpx.AsyncClient(timeout=settings.tmdb_timeout_seconds) as client:
            response = await client.get(url, params=params, headers=headers)
            response.raise_for_status()
            payload = response.json()
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        if status == 404:
            raise NotFoundError(f"TMDB resource not found: {path}") from exc
        raise UpstreamError(f"TMDB API error: {status}") from exc
    except httpx.HTTPError as exc:
        raise UpstreamError(f"TMDB request failed: {exc}") from exc
    except ValueError as exc:
        raise UpstreamError(f"TMDB returned a non-JSON body for {path}") from exc
    if not isinstance(payload, dict):
        raise UpstreamError(f"TMDB returned an unexpected body for {path}")
    return payload


def _parse(model: Type[ModelT], payload: Any, path: str) -> ModelT:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamError(f"TMDB returned a malformed {model.__name__} for {path}") from exc


def release_year(release_date: Optional[str]) -> Optional[int]:
    if not release_date:
        return None
    head = release_date.split("-", 1)[0]
    try:
        return int(head)
    except ValueError:
        return None


def poster_url(poster_path: Optional[str]) -> Optional[str]:
    if not poster_path:
        return None
    return f"{settings.tmdb_image_base.rstrip('/')}{poster_path}"


async def search_movies(query: str, *, max_pages: int = SEARCH_MAX_PAGES) -> List[MovieSearchResult]:
    """Search titles across a few result pages.

    Only entries with a poster are kept; results are deduplicated by id and
    ordered by popularity, highest first. A failure on the first page is
    raised, later pages just end the walk.
    """

    search_term = query.strip()
    if not search_term:
        return []

    results: Dict[int, MovieSearchResult] = {}
    for page in range(1, max(1, max_pages) + 1):
        try:
            payload = await tmdb_request("/search/movie", {"query": search_term, "page": page})
        except (UpstreamError, NotFoundError):
            if page == 1:
                raise
            logger.warning("Stopping TMDB search for %r at page %s", search_term, page)
            break
        for item in payload.get("results", []):
            if not item.get("id") or not item.get("poster_path"):
                continue
            try:
                result = MovieSearchResult.model_validate(item)
            except ValidationError:
                logger.warning("Skipping malformed TMDB search result %r", item.get("id"))
                continue
            results.setdefault(result.id, result)
        if page >= int(payload.get("total_pages") or 0):
            break

    return sorted(results.values(), key=lambda item: item.popularity or 0.0, reverse=True)


async def fetch_movie_details(movie_id: int) -> Movie:
    path = f"/movie/{movie_id}"
    return _parse(Movie, await tmdb_request(path), path)


async def fetch_credits(movie_id: int) -> Credits:
    path = f"/movie/{movie_id}/credits"
    return _parse(Credits, await tmdb_request(path), path)


async def fetch_director_id(movie_id: int) -> Optional[int]:
    try:
        credits = await fetch_credits(movie_id)
    except (UpstreamError, NotFoundError) as exc:
        raise EnrichmentFailure(f"Credits unavailable for movie {movie_id}") from exc
    for member in credits.crew:
        if member.job == "Director":
            return member.id
    return None


async def discover_page(filters: DiscoverFilters, page: int) -> List[Movie]:
    params: Dict[str, Any] = {
        "sort_by": filters.sort_by,
        "vote_count.gte": filters.min_vote_count,
        "vote_average.gte": filters.min_vote_average,
        "page": page,
    }
    if filters.min_release_date is not None:
        params["primary_release_date.gte"] = filters.min_release_date.isoformat()
    payload = await tmdb_request("/discover/movie", params)
    return [_parse(Movie, item, "/discover/movie") for item in payload.get("results", [])]


async def discover_pool(filters: DiscoverFilters) -> List[Movie]:
    movies: List[Movie] = []
    for page in range(1, max(1, filters.pages) + 1):
        try:
            movies.extend(await discover_page(filters, page))
        except (UpstreamError, NotFoundError):
            if page == 1:
                raise
            logger.warning("Stopping TMDB discover walk at page %s", page)
            break
    return movies


def to_candidate(movie: Movie) -> CandidateItem:
    genre_ids = {genre.id for genre in movie.genres} or set(movie.genre_ids)
    return CandidateItem(
        id=movie.id,
        title=movie.title,
        year=release_year(movie.release_date),
        franchise_id=movie.belongs_to_collection.id if movie.belongs_to_collection else None,
        director_id=movie.director_id,
        genre_ids=frozenset(genre_ids),
        production_company_ids=frozenset(company.id for company in movie.production_companies),
        poster_path=movie.poster_path,
    )


async def load_candidate(movie_id: int) -> CandidateItem:
    """Fetch a movie with its director; a credits failure leaves the director unset."""

    movie = await fetch_movie_details(movie_id)
    try:
        movie.director_id = await fetch_director_id(movie_id)
    except EnrichmentFailure as exc:
        logger.warning("Director lookup failed for movie %s: %s", movie_id, exc)
    return to_candidate(movie)
