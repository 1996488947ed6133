from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query, Response

from ..game import engine as game_engine
from ..game.models import CandidateItem, ClientGameState, GuessSubmission

router = APIRouter()


@router.get(
    "/state",
    response_model=ClientGameState,
    summary="Fetch (or start) today's game for a player",
)
async def get_game_state(
    anonymous_id: Optional[str] = Query(default=None, alias="anonymousId"),
    game_id: Optional[str] = Query(default=None, alias="gameId", description="Day in YYYY-MM-DD format"),
) -> ClientGameState:
    return await game_engine.load_client_state(anonymous_id or "", game_id or "")


@router.post("/guess", response_model=ClientGameState)
async def post_guess(payload: GuessSubmission) -> ClientGameState:
    return await game_engine.submit_guess(payload)


@router.get("/movie", response_model=CandidateItem)
async def get_answer(
    anonymous_id: Optional[str] = Query(default=None, alias="anonymousId"),
    game_id: Optional[str] = Query(default=None, alias="gameId"),
) -> CandidateItem:
    return await game_engine.reveal_answer(anonymous_id or "", game_id or "")


@router.get("/poster")
async def get_poster(
    anonymous_id: Optional[str] = Query(default=None, alias="anonymousId"),
    game_id: Optional[str] = Query(default=None, alias="gameId"),
) -> Response:
    content, mime = await game_engine.render_poster(anonymous_id or "", game_id or "")
    return Response(content=content, media_type=mime, headers={"Cache-Control": "private, max-age=300"})
