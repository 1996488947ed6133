from __future__ import annotations

from typing import Sequence

SCORE_TABLE: Sequence[int] = (100, 80, 60, 40, 20)


def score_for(winning_guess_index: int) -> int:
    """Points for a win on the given 1-based guess; 0 outside the table."""

    if winning_guess_index < 1 or winning_guess_index > len(SCORE_TABLE):
        return 0
    return SCORE_TABLE[winning_guess_index - 1]
