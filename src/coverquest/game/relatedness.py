from __future__ import annotations

from typing import AbstractSet, List, Optional

from .models import CandidateItem, Guess

DEFAULT_GENRE_THRESHOLD = 3

FRANCHISE = "franchise"
DIRECTOR = "director"
GENRES = "genres"
PRODUCTION = "production"


def _same_id(left: Optional[int], right: Optional[int]) -> bool:
    return left is not None and right is not None and left == right


def _overlap(left: AbstractSet[int], right: AbstractSet[int]) -> int:
    if not left or not right:
        return 0
    return len(set(left) & set(right))


def related_signals(
    guess: Guess,
    answer: CandidateItem,
    *,
    genre_threshold: int = DEFAULT_GENRE_THRESHOLD,
    match_production: bool = False,
) -> List[str]:
    """Return every relatedness rule the guess satisfies, in rule order.

    A missing field on either side never matches.
    """

    signals: List[str] = []
    if _same_id(guess.franchise_id, answer.franchise_id):
        signals.append(FRANCHISE)
    if _same_id(guess.director_id, answer.director_id):
        signals.append(DIRECTOR)
    shared_genres = _overlap(guess.genre_ids, answer.genre_ids)
    if shared_genres > 0 and shared_genres >= max(1, genre_threshold):
        signals.append(GENRES)
    if match_production and _overlap(guess.production_company_ids, answer.production_company_ids):
        signals.append(PRODUCTION)
    return signals


def is_related(
    guess: Guess,
    answer: CandidateItem,
    *,
    genre_threshold: int = DEFAULT_GENRE_THRESHOLD,
    match_production: bool = False,
) -> bool:
    return bool(
        related_signals(
            guess,
            answer,
            genre_threshold=genre_threshold,
            match_production=match_production,
        )
    )
