"""Liveness, readiness and cache status endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheStore, get_cache
from app.core.database import get_db
from app.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded", "unhealthy"]
    database: Literal["connected", "disconnected"] | None = None


class CacheHealthResponse(BaseModel):
    """Counters of the process-wide cache.

    ``degraded`` means the store is at ``max_keys`` and new results are
    served uncached until entries expire.
    """

    status: Literal["ok", "degraded"]
    reaper_running: bool
    keys: int
    max_keys: int
    hits: int
    misses: int
    sets: int
    deletes: int
    hit_rate_pct: float


@router.get("", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get("/ready", response_model=HealthResponse)
async def readiness(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Round-trip a trivial query to PostgreSQL.

    Always answers 200; the body says whether the store is reachable.
    """
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error(
            "health.database_disconnected",
            error=str(e),
            error_type=type(e).__name__,
        )
        return HealthResponse(status="unhealthy", database="disconnected")
    return HealthResponse(status="ok", database="connected")


@router.get("/cache", response_model=CacheHealthResponse)
async def cache_status(cache: CacheStore = Depends(get_cache)) -> CacheHealthResponse:
    stats = cache.stats()
    return CacheHealthResponse(
        status="degraded" if stats.keys >= cache.max_keys else "ok",
        reaper_running=cache.is_running,
        keys=stats.keys,
        max_keys=cache.max_keys,
        hits=stats.hits,
        misses=stats.misses,
        sets=stats.sets,
        deletes=stats.deletes,
        hit_rate_pct=stats.hit_rate,
    )
