"""Redis connection pool and realtime publishing helpers."""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as redis

logger = logging.getLogger(__name__)

_pool: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Initialize the Redis connection pool."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    """Get the Redis client."""
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool


def user_channel(user_id: int) -> str:
    """Redis pub/sub channel carrying one user's realtime events."""
    return f"ws:user:{user_id}"


async def publish_to_user(
    redis_client: object | None,
    user_id: int,
    channel: str,
    event: str,
    data: dict[str, Any],
) -> None:
    """Publish an event for a user's WebSocket connections.

    ``channel`` is the WebSocket channel the client subscribes to
    (``messages`` or ``gamification``). Delivery is best effort: a Redis
    failure is logged and never fails the calling write.
    """
    if redis_client is None:
        return

    payload = {"channel": channel, "event": event, "data": data}
    try:
        await redis_client.publish(  # type: ignore[attr-defined]
            user_channel(user_id),
            json.dumps(payload, default=str),
        )
    except Exception:
        logger.warning("Failed to publish %s event to user %s", event, user_id, exc_info=True)
