from __future__ import annotations

import sys
from pathlib import Path
import asyncio
from datetime import datetime, timezone
from typing import Iterator

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from coverquest.core import database as db_module  # noqa: E402
from coverquest.db.models import Base  # noqa: E402
from coverquest.game.models import CandidateItem  # noqa: E402
from coverquest.services import cache as cache_module  # noqa: E402
from coverquest.services.cache import InMemoryCache  # noqa: E402

GAME_DAY = "2025-06-15"
GAME_NOW = datetime(2025, 6, 15, 12, 30, tzinfo=timezone.utc)


async def _create_engine(url: str):
    engine = create_async_engine(url, future=True, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


@pytest.fixture(autouse=True)
def setup_test_database(tmp_path: Path) -> Iterator[None]:
    engine = asyncio.run(_create_engine(f"sqlite+aiosqlite:///{tmp_path / 'coverquest.db'}"))
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    original_engine = db_module._engine
    original_factory = db_module._session_factory
    db_module._engine = engine
    db_module._session_factory = session_factory

    try:
        yield
    finally:
        db_module._engine = original_engine
        db_module._session_factory = original_factory
        asyncio.run(engine.dispose())


@pytest.fixture(autouse=True)
def memory_cache() -> Iterator[InMemoryCache]:
    cache = InMemoryCache()
    original = cache_module._cache
    cache_module._cache = cache
    try:
        yield cache
    finally:
        cache_module._cache = original


@pytest.fixture
def dune() -> CandidateItem:
    return CandidateItem(
        id=42,
        title="Dune",
        year=2021,
        franchise_id=726871,
        director_id=137427,
        genre_ids=frozenset({878, 12, 18}),
        production_company_ids=frozenset({923}),
        poster_path="/dune.jpg",
    )
