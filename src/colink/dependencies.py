"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from colink.database import get_session as _get_session
from colink.redis_client import get_redis as _get_redis

get_db = _get_session


async def get_redis_dep() -> AsyncGenerator[object | None, None]:
    """Yield the Redis client used for realtime publishing."""
    yield _get_redis()
