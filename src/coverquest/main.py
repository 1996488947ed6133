from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.database import register_database
from .core.errors import CoverQuestError, InvalidRequestError
from .game.engine import ensure_daily_answer
from .game.selection import daily_identifier
from .routers import game, health, scores, tmdb


logger = logging.getLogger(__name__)


def _allowed_origins() -> list[str]:
    origins = list(settings.cors_origins or ["*"])
    if "*" in origins:
        return ["*"]
    if settings.frontend_base_url:
        frontend = str(settings.frontend_base_url).rstrip("/")
        if frontend not in origins:
            origins.append(frontend)
    return origins


async def _handle_domain_error(request: Request, exc: CoverQuestError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "detail": exc.message},
    )


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={
            "error": InvalidRequestError.kind,
            "detail": "Missing or invalid fields: " + ", ".join(fields),
        },
    )


def create_app() -> FastAPI:
    app = FastAPI(title="CoverQuest API", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CoverQuestError, _handle_domain_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(game.router, prefix="/game", tags=["game"])
    app.include_router(tmdb.router, prefix="/tmdb", tags=["tmdb"])
    app.include_router(scores.router, prefix="/scores", tags=["scores"])

    register_database(app)

    @app.on_event("startup")
    async def warm_daily_answer() -> None:
        if not settings.tmdb_api_key:
            logger.warning("TMDB_API_KEY is not set; daily games cannot be created")
            return
        try:
            await ensure_daily_answer(daily_identifier())
        except CoverQuestError as exc:
            logger.warning("Failed to warm the daily answer: %s", exc)

    return app


app = create_app()
