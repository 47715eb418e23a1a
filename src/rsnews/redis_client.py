"""Optional Redis client used for badge pub/sub notifications.

Redis is disabled when ``RSN_REDIS_URL`` is empty; callers then receive
``None`` and skip publishing.
"""

import json
from typing import Any

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str) -> redis.Redis:
    """Connect the shared client."""
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
        health_check_interval=30,
    )
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_optional_redis() -> redis.Redis | None:
    """Shared client, or None when Redis is not configured."""
    return _client


async def publish_event(client: redis.Redis, channel: str, payload: dict[str, Any]) -> int:
    """Publish a JSON payload. Returns the number of subscribers reached."""
    return await client.publish(channel, json.dumps(payload, default=str))
