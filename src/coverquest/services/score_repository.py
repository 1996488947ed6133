from __future__ import annotations

from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import models


async def insert_score(
    session: AsyncSession,
    *,
    game_id: str,
    anonymous_id: str,
    movie_id: int,
    guesses: Sequence[str],
    guess_number: int,
    score: int,
) -> models.ScoreEntry:
    record = models.ScoreEntry(
        game_id=game_id,
        anonymous_id=anonymous_id,
        movie_id=movie_id,
        guesses=list(guesses),
        guess_number=guess_number,
        score=score,
    )
    session.add(record)
    await session.flush()
    return record


async def list_scores_for_player(
    session: AsyncSession,
    anonymous_id: str,
    limit: Optional[int] = None,
) -> List[models.ScoreEntry]:
    stmt = (
        select(models.ScoreEntry)
        .where(models.ScoreEntry.anonymous_id == anonymous_id)
        .order_by(models.ScoreEntry.created_at.desc())
    )
    if limit is not None and limit > 0:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_leaderboard(
    session: AsyncSession,
    game_id: str,
    limit: int = 10,
) -> List[models.ScoreEntry]:
    """Top entries for a day: highest score first, fewer guesses on ties."""

    stmt = (
        select(models.ScoreEntry)
        .where(models.ScoreEntry.game_id == game_id)
        .order_by(
            models.ScoreEntry.score.desc(),
            models.ScoreEntry.guess_number.asc(),
            models.ScoreEntry.created_at.asc(),
        )
        .limit(max(1, limit))
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
