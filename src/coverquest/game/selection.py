from __future__ import annotations

import hashlib
import time
from datetime import date, datetime, timezone
from typing import Optional, Sequence, TypeVar

from ..core.errors import EmptyPoolError, InvalidRequestError

T = TypeVar("T")

_UNIT_SCALE = float(1 << 64)


def daily_identifier(now: Optional[datetime] = None) -> str:
    """Return the ``YYYY-MM-DD`` identifier of the current UTC day."""

    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return f"{now.year:04d}-{now.month:02d}-{now.day:02d}"


def parse_identifier(identifier: str) -> date:
    try:
        return datetime.strptime(identifier, "%Y-%m-%d").date()
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError("Invalid game id. Use YYYY-MM-DD.") from exc


def daily_seed(identifier: str) -> int:
    day = parse_identifier(identifier)
    return day.year * 10000 + day.month * 100 + day.day


def unit_fraction(seed: int) -> float:
    """Map an integer seed onto [0, 1) with a stable hash."""

    digest = hashlib.sha256(str(seed).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") / _UNIT_SCALE


def select_daily(identifier: str, candidate_pool: Sequence[T], allow_reseed: bool = False) -> T:
    """Pick the day's item from ``candidate_pool``.

    With ``allow_reseed`` disabled the result depends only on the identifier
    and the pool. Reseeding mixes in the wall clock and is meant for staging,
    where a fresh answer per request is useful.
    """

    if not candidate_pool:
        raise EmptyPoolError("Candidate pool is empty")

    seed = daily_seed(identifier)
    if allow_reseed:
        seed += (time.time_ns() // 1_000_000) % 1_000_000

    index = int(unit_fraction(seed) * len(candidate_pool))
    return candidate_pool[min(index, len(candidate_pool) - 1)]
