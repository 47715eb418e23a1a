"""Liveness, readiness and version endpoints.

Readiness covers what badge evaluation needs: a reachable database, a seeded
catalog with at least one active badge, and Redis when it is configured.
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rsnews.config import get_settings
from rsnews.db.models import BadgeDefinition
from rsnews.dependencies import get_db, get_redis_dep

router = APIRouter()

OK = "ok"
DISABLED = "disabled"


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


async def _check_catalog(db: AsyncSession) -> str:
    try:
        active = await db.scalar(
            select(func.count()).select_from(BadgeDefinition).where(BadgeDefinition.is_active.is_(True))
        )
    except SQLAlchemyError as exc:
        return f"error: {exc.__class__.__name__}"
    return OK if active else "empty"


async def _check_redis(redis: object) -> str:
    if redis is None:
        return DISABLED
    try:
        await redis.ping()  # type: ignore[attr-defined]
    except Exception as exc:
        return f"error: {exc}"
    return OK


@router.get("/ready")
async def readiness(
    response: Response,
    db: AsyncSession = Depends(get_db),  # noqa: B008
    redis: object = Depends(get_redis_dep),  # noqa: B008
) -> dict[str, object]:
    """503 until the database answers and the badge catalog is seeded."""
    checks = {
        "badge_catalog": await _check_catalog(db),
        "redis": await _check_redis(redis),
    }
    ready = all(v in (OK, DISABLED) for v in checks.values())
    if not ready:
        response.status_code = 503
    return {"status": "ready" if ready else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
