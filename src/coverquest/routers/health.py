from __future__ import annotations

from fastapi import APIRouter

from ..core.config import settings
from ..core.database import check_database
from ..game.selection import daily_identifier
from ..services.cache import get_cache

router = APIRouter()


@router.get("/live", response_model=dict)
async def live() -> dict:
    return {"ok": True}


@router.get("/ready", response_model=dict)
async def ready() -> dict:
    cache = await get_cache(settings.redis_url)
    await cache.get("coverquest:health")
    await check_database()
    return {"ok": True, "gameId": daily_identifier()}
