"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from rsnews.badges.badge_service import BadgeService
from rsnews.config import get_settings
from rsnews.database import get_session as get_db
from rsnews.redis_client import get_optional_redis

__all__ = ["get_badge_service", "get_db", "get_redis_dep"]


async def get_redis_dep() -> AsyncGenerator[Redis | None, None]:
    """Yield the Redis client, or None when pub/sub is disabled."""
    yield get_optional_redis()


def get_badge_service(
    db: AsyncSession = Depends(get_db),  # noqa: B008
    redis: Redis | None = Depends(get_redis_dep),  # noqa: B008
) -> BadgeService:
    """Per-request badge service bound to the configured launch date."""
    return BadgeService(db, redis, launched_at=get_settings().platform_launch_date)
