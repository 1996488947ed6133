from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from ..game.engine import validate_anonymous_id
from ..game.models import LeaderboardResponse, ScoreHistoryResponse
from ..game.selection import daily_identifier, parse_identifier
from ..services.scores import get_leaderboard, get_user_scores

router = APIRouter()


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    game_id: Optional[str] = Query(default=None, alias="gameId"),
    limit: Optional[int] = Query(default=None, ge=1, le=100),
) -> LeaderboardResponse:
    day = game_id or daily_identifier()
    parse_identifier(day)
    entries = await get_leaderboard(day, limit=limit)
    return LeaderboardResponse(game_id=day, entries=entries)


@router.get("/history", response_model=ScoreHistoryResponse)
async def history(anonymous_id: Optional[str] = Query(default=None, alias="anonymousId")) -> ScoreHistoryResponse:
    entries = await get_user_scores(validate_anonymous_id(anonymous_id))
    return ScoreHistoryResponse(entries=entries)
