from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from ..services import tmdb
from ..services.tmdb import Movie, MovieSearchResult

router = APIRouter()


class MovieSearchResponse(BaseModel):
    results: list[MovieSearchResult]


class MovieCreditsResponse(BaseModel):
    director_id: Optional[int] = None


@router.get("/search", response_model=MovieSearchResponse)
async def search(query: Optional[str] = Query(default=None)) -> MovieSearchResponse:
    if not query or not query.strip():
        return MovieSearchResponse(results=[])
    return MovieSearchResponse(results=await tmdb.search_movies(query))


@router.get("/movie/{movie_id}", response_model=Movie)
async def get_movie(movie_id: int) -> Movie:
    return await tmdb.fetch_movie_details(movie_id)


@router.get("/movie/{movie_id}/credits", response_model=MovieCreditsResponse)
async def get_movie_credits(movie_id: int) -> MovieCreditsResponse:
    return MovieCreditsResponse(director_id=await tmdb.fetch_director_id(movie_id))
