from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, Sequence, TypeVar

from .models import GameRecord

PIXELATION_LEVELS: Sequence[int] = (80, 60, 40, 25, 15)
FULLY_REVEALED = 0

T = TypeVar("T")

logger = logging.getLogger(__name__)


def level_for(guess_index: int) -> int:
    """Pixelation intensity (0-100) shown before the given 0-based guess."""

    index = max(0, min(guess_index, len(PIXELATION_LEVELS) - 1))
    return PIXELATION_LEVELS[index]


def reveal_level(record: GameRecord) -> int:
    if record.is_complete:
        return FULLY_REVEALED
    return level_for(record.current_guess)


class RevealState(str, Enum):
    OBFUSCATING = "obfuscating"
    OBFUSCATED = "obfuscated"
    RETRYING_OBFUSCATION = "retrying_obfuscation"
    BLOCKED_PENDING_OBFUSCATION = "blocked_pending_obfuscation"
    REVEALED = "revealed"


@dataclass
class PosterRevealMachine(Generic[T]):
    """Tracks what may be shown for a poster while it is being obfuscated.

    While the puzzle is unsolved only an obfuscated rendering is ever
    presented. Failures are retried ``max_attempts`` times in total, after
    which the poster stays blocked and nothing is shown.
    """

    max_attempts: int = 3
    state: RevealState = RevealState.OBFUSCATING
    attempts: int = 0
    _image: Optional[T] = None

    @property
    def should_attempt(self) -> bool:
        return self.state in (RevealState.OBFUSCATING, RevealState.RETRYING_OBFUSCATION)

    def record_success(self, rendered: T) -> None:
        if not self.should_attempt:
            raise RuntimeError(f"Cannot accept a rendering in state {self.state.value}")
        self.attempts += 1
        self._image = rendered
        self.state = RevealState.OBFUSCATED

    def record_failure(self, error: Optional[BaseException] = None) -> None:
        if not self.should_attempt:
            raise RuntimeError(f"Cannot record a failure in state {self.state.value}")
        self.attempts += 1
        if self.attempts >= max(1, self.max_attempts):
            self.state = RevealState.BLOCKED_PENDING_OBFUSCATION
            logger.warning("Poster obfuscation blocked after %s attempts: %s", self.attempts, error)
        else:
            self.state = RevealState.RETRYING_OBFUSCATION
            logger.info("Retrying poster obfuscation (attempt %s): %s", self.attempts, error)

    def reveal(self, original: T) -> None:
        """Show the unmodified image; only valid once the game is complete."""

        self._image = original
        self.state = RevealState.REVEALED

    def present(self) -> Optional[T]:
        if self.state in (RevealState.OBFUSCATED, RevealState.REVEALED):
            return self._image
        return None
