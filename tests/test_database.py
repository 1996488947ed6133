from __future__ import annotations

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError

from coverquest.core import database
from coverquest.core.errors import StorageFailure
from coverquest.db.models import ScoreEntry


@pytest.mark.asyncio
async def test_engine_singleton(monkeypatch) -> None:
    await database.disconnect_database()
    monkeypatch.setattr(database.settings, "database_url", "sqlite+aiosqlite:///:memory:")

    engine = database.get_engine()
    again = database.get_engine()

    assert engine is again

    await database.disconnect_database()


@pytest.mark.asyncio
async def test_connect_database_creates_scores_table(monkeypatch) -> None:
    await database.disconnect_database()
    monkeypatch.setattr(database.settings, "database_url", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setattr(database.settings, "database_connect_retries", 1)

    await database.connect_database()

    async with database.session_scope() as session:
        result = await session.execute(
            text("SELECT name FROM sqlite_master WHERE type='table' AND name='scores'")
        )
        assert result.scalar_one() == "scores"

    await database.disconnect_database()


@pytest.mark.asyncio
async def test_connect_database_gives_up_after_retries(monkeypatch) -> None:
    await database.disconnect_database()
    monkeypatch.setattr(database.settings, "database_url", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setattr(database.settings, "database_connect_retries", 2)
    monkeypatch.setattr(database.settings, "database_connect_retry_interval_seconds", 0)

    attempts = {"value": 0}

    async def failing_ping(engine) -> None:
        attempts["value"] += 1
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr(database, "_ping_database", failing_ping)

    with pytest.raises(StorageFailure):
        await database.connect_database()

    assert attempts["value"] == 2
    await database.disconnect_database()


@pytest.mark.asyncio
async def test_connect_database_recovers_on_later_attempt(monkeypatch) -> None:
    await database.disconnect_database()
    monkeypatch.setattr(database.settings, "database_url", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setattr(database.settings, "database_connect_retries", 3)
    monkeypatch.setattr(database.settings, "database_connect_retry_interval_seconds", 0)

    real_ping = database._ping_database
    attempts = {"value": 0}

    async def flaky_ping(engine) -> None:
        attempts["value"] += 1
        if attempts["value"] == 1:
            raise OperationalError("SELECT 1", {}, Exception("database is starting up"))
        await real_ping(engine)

    monkeypatch.setattr(database, "_ping_database", flaky_ping)

    await database.connect_database()

    assert attempts["value"] == 2
    await database.disconnect_database()


@pytest.mark.asyncio
async def test_session_scope_commits() -> None:
    async with database.session_scope() as session:
        session.add(
            ScoreEntry(
                game_id="2025-06-15",
                anonymous_id="abc",
                movie_id=42,
                guesses=["Dune"],
                guess_number=1,
                score=100,
            )
        )

    async with database.session_scope() as session:
        rows = (await session.execute(select(ScoreEntry))).scalars().all()

    assert [row.anonymous_id for row in rows] == ["abc"]


@pytest.mark.asyncio
async def test_session_scope_maps_sql_errors() -> None:
    with pytest.raises(StorageFailure):
        async with database.session_scope("load leaderboard") as session:
            await session.execute(text("SELECT * FROM missing_table"))


@pytest.mark.asyncio
async def test_check_database_reports_unreachable_database(monkeypatch) -> None:
    async def failing_ping(engine) -> None:
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(database, "_ping_database", failing_ping)

    with pytest.raises(StorageFailure):
        await database.check_database()
