"""
Shared async Redis client.

One lazily created client per process, used by :class:`core.cache.JsonCache`.
Redis is optional for this service: callers must treat any exception from
:func:`get_shared_redis` as "cache unavailable".
"""

from __future__ import annotations

import logging
import os
from typing import Final

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL: Final[str] = "redis://redis:6379"
REDIS_TIMEOUT_SECONDS: Final[float] = 2.0


class _RedisState:
    client: aioredis.Redis | None = None


def get_redis_url() -> str:
    """``REDIS_URL`` or the Docker network default."""
    return os.getenv("REDIS_URL", "").strip() or DEFAULT_REDIS_URL


async def _alive(client: aioredis.Redis) -> bool:
    try:
        await client.ping()
    except (RedisConnectionError, OSError):
        return False
    return True


async def get_shared_redis() -> aioredis.Redis:
    """
    Return the process-wide client, reconnecting if the last one died.

    Raises when Redis cannot be reached.
    """
    current = _RedisState.client
    if current is not None:
        if await _alive(current):
            return current
        logger.warning("Redis connection lost; reconnecting")
        _RedisState.client = None

    client = aioredis.from_url(
        get_redis_url(),
        decode_responses=True,
        socket_connect_timeout=REDIS_TIMEOUT_SECONDS,
        socket_timeout=REDIS_TIMEOUT_SECONDS,
    )
    await client.ping()
    _RedisState.client = client
    logger.info("Shared Redis client connected")
    return client


async def close_shared_redis() -> None:
    """Close the shared client on shutdown."""
    client, _RedisState.client = _RedisState.client, None
    if client is not None:
        await client.aclose()
        logger.info("Redis client closed")
