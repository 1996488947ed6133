from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from .scoring import score_for

MAX_GUESSES = 5


class GamePhase(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE_WON = "complete_won"
    COMPLETE_LOST = "complete_lost"


class CandidateItem(BaseModel):
    """Metadata for a guessable movie; only ``id`` and ``title`` are guaranteed."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int
    title: str
    year: Optional[int] = None
    franchise_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("franchiseId", "franchise_id", "collectionId"),
        serialization_alias="franchiseId",
    )
    director_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("directorId", "director_id"),
        serialization_alias="directorId",
    )
    genre_ids: FrozenSet[int] = Field(
        default_factory=frozenset,
        validation_alias=AliasChoices("genreIds", "genre_ids"),
        serialization_alias="genreIds",
    )
    production_company_ids: FrozenSet[int] = Field(
        default_factory=frozenset,
        validation_alias=AliasChoices("productionCompanyIds", "production_company_ids"),
        serialization_alias="productionCompanyIds",
    )
    poster_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("posterPath", "poster_path"),
        serialization_alias="posterPath",
    )


class Guess(BaseModel):
    """A submitted attempt. Enrichment fields stay empty when lookups fail."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    title: str
    movie_id: int = Field(
        validation_alias=AliasChoices("movieId", "movie_id"),
        serialization_alias="movieId",
    )
    year: Optional[int] = None
    franchise_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("franchiseId", "franchise_id", "collectionId"),
        serialization_alias="franchiseId",
    )
    director_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("directorId", "director_id"),
        serialization_alias="directorId",
    )
    genre_ids: FrozenSet[int] = Field(
        default_factory=frozenset,
        validation_alias=AliasChoices("genreIds", "genre_ids"),
        serialization_alias="genreIds",
    )
    production_company_ids: FrozenSet[int] = Field(
        default_factory=frozenset,
        validation_alias=AliasChoices("productionCompanyIds", "production_company_ids"),
        serialization_alias="productionCompanyIds",
    )


class GameRecord(BaseModel):
    """Authoritative progress for one (player, day) pair.

    Records are frozen; every transition produces a new instance. The
    validator rejects any payload (including one read back from storage)
    that breaks the progress invariants.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    game_id: str = Field(
        validation_alias=AliasChoices("gameId", "game_id"),
        serialization_alias="gameId",
    )
    movie_id: int = Field(
        validation_alias=AliasChoices("movieId", "movie_id"),
        serialization_alias="movieId",
    )
    movie_title: str = Field(
        validation_alias=AliasChoices("movieTitle", "movie_title"),
        serialization_alias="movieTitle",
    )
    guesses: Tuple[Guess, ...] = Field(default_factory=tuple)
    current_guess: int = Field(
        default=0,
        validation_alias=AliasChoices("currentGuess", "current_guess"),
        serialization_alias="currentGuess",
    )
    is_complete: bool = Field(
        default=False,
        validation_alias=AliasChoices("isComplete", "is_complete"),
        serialization_alias="isComplete",
    )
    won: bool = False
    score: int = 0

    @model_validator(mode="after")
    def _check_invariants(self) -> "GameRecord":
        if len(self.guesses) != self.current_guess:
            raise ValueError("guess count does not match recorded guesses")
        if self.current_guess > MAX_GUESSES:
            raise ValueError("too many guesses recorded")
        if self.is_complete != (self.won or self.current_guess >= MAX_GUESSES):
            raise ValueError("completion flag is inconsistent with progress")
        expected_score = score_for(self.current_guess) if self.won else 0
        if self.score != expected_score:
            raise ValueError("score is inconsistent with the winning guess")
        return self


class ClientGuess(Guess):
    correct: bool = False
    related: bool = False


class ClientGameState(BaseModel):
    """Game progress as exposed to the browser; never carries the answer."""

    model_config = ConfigDict(populate_by_name=True)

    game_id: str = Field(
        validation_alias=AliasChoices("gameId", "game_id"),
        serialization_alias="gameId",
    )
    guesses: List[ClientGuess] = Field(default_factory=list)
    current_guess: int = Field(
        default=0,
        validation_alias=AliasChoices("currentGuess", "current_guess"),
        serialization_alias="currentGuess",
    )
    is_complete: bool = Field(
        default=False,
        validation_alias=AliasChoices("isComplete", "is_complete"),
        serialization_alias="isComplete",
    )
    won: bool = False
    status: GamePhase = GamePhase.IN_PROGRESS
    score: int = 0
    max_guesses: int = Field(
        default=MAX_GUESSES,
        validation_alias=AliasChoices("maxGuesses", "max_guesses"),
        serialization_alias="maxGuesses",
    )
    pixelation_level: int = Field(
        default=0,
        validation_alias=AliasChoices("pixelationLevel", "pixelation_level"),
        serialization_alias="pixelationLevel",
    )
    poster_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("posterUrl", "poster_url"),
        serialization_alias="posterUrl",
    )


class GuessInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    movie_id: int = Field(
        validation_alias=AliasChoices("movieId", "movie_id"),
        serialization_alias="movieId",
    )
    title: str


class GuessSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    anonymous_id: str = Field(
        validation_alias=AliasChoices("anonymousId", "anonymous_id"),
        serialization_alias="anonymousId",
    )
    game_id: str = Field(
        validation_alias=AliasChoices("gameId", "game_id"),
        serialization_alias="gameId",
    )
    guess: GuessInput


class ScoreEntryPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    game_id: str = Field(
        validation_alias=AliasChoices("gameId", "game_id"),
        serialization_alias="gameId",
    )
    anonymous_id: str = Field(
        validation_alias=AliasChoices("anonymousId", "anonymous_id"),
        serialization_alias="anonymousId",
    )
    movie_id: int = Field(
        validation_alias=AliasChoices("movieId", "movie_id"),
        serialization_alias="movieId",
    )
    guesses: List[str] = Field(default_factory=list)
    guess_number: int = Field(
        default=0,
        validation_alias=AliasChoices("guessNumber", "guess_number"),
        serialization_alias="guessNumber",
    )
    score: int = 0
    created_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )


class LeaderboardResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_id: str = Field(
        validation_alias=AliasChoices("gameId", "game_id"),
        serialization_alias="gameId",
    )
    entries: List[ScoreEntryPayload] = Field(default_factory=list)


class ScoreHistoryResponse(BaseModel):
    entries: List[ScoreEntryPayload] = Field(default_factory=list)
