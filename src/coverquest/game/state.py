from __future__ import annotations

from dataclasses import dataclass

from ..core.errors import GameAlreadyCompleteError
from .models import MAX_GUESSES, CandidateItem, GamePhase, GameRecord, Guess
from .scoring import score_for


@dataclass(frozen=True)
class GameStatus:
    phase: GamePhase
    guesses_used: int

    @property
    def is_terminal(self) -> bool:
        return self.phase is not GamePhase.IN_PROGRESS


def status_of(record: GameRecord) -> GameStatus:
    if record.won:
        return GameStatus(GamePhase.COMPLETE_WON, record.current_guess)
    if record.is_complete:
        return GameStatus(GamePhase.COMPLETE_LOST, record.current_guess)
    return GameStatus(GamePhase.IN_PROGRESS, record.current_guess)


def create_initial_record(game_id: str, answer: CandidateItem) -> GameRecord:
    return GameRecord(game_id=game_id, movie_id=answer.id, movie_title=answer.title)


def is_exact_match(guess: Guess, record: GameRecord) -> bool:
    """Compare by TMDB id; titles differ too often in punctuation and locale."""

    return guess.movie_id == record.movie_id


def submit_guess(record: GameRecord, guess: Guess, exact_match: bool) -> GameRecord:
    """Append ``guess`` and return the next snapshot of ``record``.

    The input record is left untouched.
    """

    if record.is_complete:
        raise GameAlreadyCompleteError("Game already complete")

    guess_count = record.current_guess + 1
    won = record.won or exact_match
    score = record.score
    if won and not record.won:
        score = score_for(guess_count)

    return GameRecord(
        game_id=record.game_id,
        movie_id=record.movie_id,
        movie_title=record.movie_title,
        guesses=record.guesses + (guess,),
        current_guess=guess_count,
        is_complete=won or guess_count >= MAX_GUESSES,
        won=won,
        score=score,
    )
