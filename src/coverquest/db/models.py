from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List

from sqlalchemy import BigInteger, DateTime, Index, Integer, JSON, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base class for application models."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_score_id() -> str:
    return str(uuid.uuid4())


class ScoreEntry(Base):
    """Write-once summary of a finished game."""

    __tablename__ = "scores"
    __table_args__ = (
        Index("ix_scores_game_ranking", "game_id", "score", "guess_number"),
        Index("ix_scores_anonymous_created", "anonymous_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_score_id)
    game_id: Mapped[str] = mapped_column(String(10), nullable=False)
    anonymous_id: Mapped[str] = mapped_column(String(128), nullable=False)
    movie_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guesses: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    guess_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
