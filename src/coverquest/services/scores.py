from __future__ import annotations

from typing import List, Optional

from ..core.config import settings
from ..core.database import session_scope
from ..game.models import GameRecord, ScoreEntryPayload
from .score_repository import (
    insert_score as repo_insert_score,
    list_leaderboard as repo_list_leaderboard,
    list_scores_for_player as repo_list_scores_for_player,
)


async def submit_score(record: GameRecord, anonymous_id: str) -> ScoreEntryPayload:
    """Write the history row for a finished game."""

    guess_number = record.current_guess if record.won else 0
    async with session_scope("store score entry") as session:
        entry = await repo_insert_score(
            session,
            game_id=record.game_id,
            anonymous_id=anonymous_id,
            movie_id=record.movie_id,
            guesses=[guess.title for guess in record.guesses],
            guess_number=guess_number,
            score=record.score,
        )
    return ScoreEntryPayload.model_validate(entry)


async def get_user_scores(anonymous_id: str, limit: Optional[int] = None) -> List[ScoreEntryPayload]:
    async with session_scope("load score history") as session:
        entries = await repo_list_scores_for_player(session, anonymous_id, limit=limit)
        return [ScoreEntryPayload.model_validate(entry) for entry in entries]


async def get_leaderboard(game_id: str, limit: Optional[int] = None) -> List[ScoreEntryPayload]:
    effective_limit = limit if limit is not None else settings.leaderboard_limit
    async with session_scope("load leaderboard") as session:
        entries = await repo_list_leaderboard(session, game_id, limit=effective_limit)
        return [ScoreEntryPayload.model_validate(entry) for entry in entries]
