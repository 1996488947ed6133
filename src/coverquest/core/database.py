from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..db.models import ScoreEntry
from .config import settings
from .errors import StorageFailure

logger = logging.getLogger(__name__)

SCORE_TABLES = (ScoreEntry.__table__,)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """Return the engine for the score history database, creating it once."""

    global _engine, _session_factory

    if _engine is None:
        _engine = create_async_engine(
            settings.database_url,
            pool_pre_ping=True,
            echo=settings.database_echo,
        )
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        get_engine()

    assert _session_factory is not None
    return _session_factory


@asynccontextmanager
async def session_scope(action: str = "access score history") -> AsyncIterator[AsyncSession]:
    """Yield a session that commits on exit.

    Any SQLAlchemy error rolls back and surfaces as ``StorageFailure`` so
    callers only ever deal with the domain error.
    """

    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.warning("Unable to %s: %s", action, exc)
            raise StorageFailure(f"Unable to {action}") from exc


async def _ping_database(engine: AsyncEngine) -> None:
    async with engine.connect() as connection:
        await connection.execute(text("SELECT 1"))


async def _ensure_score_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as connection:
        await connection.run_sync(ScoreEntry.metadata.create_all, tables=list(SCORE_TABLES))


async def check_database() -> None:
    """Raise ``StorageFailure`` when the score database cannot be reached."""

    try:
        await _ping_database(get_engine())
    except (SQLAlchemyError, OSError) as exc:
        raise StorageFailure("Score database unavailable") from exc


async def connect_database() -> None:
    """Wait for the score database and make sure the ``scores`` table exists.

    Connection failures (database still starting, network not up yet) are
    retried ``DATABASE_CONNECT_RETRIES`` times. Other SQL errors abort
    immediately.
    """

    engine = get_engine()
    attempts = max(1, settings.database_connect_retries)
    delay = max(0.0, settings.database_connect_retry_interval_seconds)

    for attempt in range(1, attempts + 1):
        try:
            await _ping_database(engine)
            await _ensure_score_schema(engine)
        except (OperationalError, OSError) as exc:
            logger.warning("Score database not ready (attempt %s/%s): %s", attempt, attempts, exc)
            if attempt == attempts:
                raise StorageFailure(
                    f"Score database unreachable after {attempts} attempts"
                ) from exc
            await asyncio.sleep(delay)
        except SQLAlchemyError:
            logger.exception("Score schema initialisation failed")
            raise
        else:
            logger.info("Score database ready on attempt %s", attempt)
            return


async def disconnect_database() -> None:
    global _engine, _session_factory

    _session_factory = None
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def register_database(app: FastAPI) -> None:
    """Open the score database on startup and dispose of it on shutdown."""

    @app.on_event("startup")
    async def _startup() -> None:  # pragma: no cover - FastAPI integration
        await connect_database()

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # pragma: no cover - FastAPI integration
        await disconnect_database()
