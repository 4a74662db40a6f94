"""
Redis-backed JSON cache for expensive lookups.

The cache is a best-effort accelerator: every read tolerates an outage
(treated as a miss) and every write failure is swallowed. Entries expire
via Redis TTL; bulk invalidation is done by bumping a generation counter
that is part of the key (see :meth:`JsonCache.generation`).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from core.redis import get_shared_redis

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], Awaitable[Any]]


class JsonCache:
    """JSON get/set/delete on top of an async Redis client.

    ``client_factory`` returns the client to use; it may raise when Redis is
    down, which is handled like any other cache failure.
    """

    def __init__(self, client_factory: ClientFactory = get_shared_redis) -> None:
        self._client_factory = client_factory

    async def get(self, key: str) -> Any | None:
        try:
            client = await self._client_factory()
            hit = await client.get(key)
            if hit is None:
                return None
            return json.loads(hit)
        except Exception:
            logger.debug("Redis cache read failed for %s", key, exc_info=True)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            payload = json.dumps(value, default=str)
            client = await self._client_factory()
            await client.set(key, payload, ex=int(ttl_seconds))
        except Exception:
            logger.debug("Redis cache write failed for %s", key, exc_info=True)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            client = await self._client_factory()
            await client.delete(key)
        except Exception:
            logger.debug("Redis cache delete failed for %s", key, exc_info=True)
            return False
        return True

    async def generation(self, key: str) -> int:
        """Current value of a generation counter, ``0`` if unset or unreachable."""
        try:
            client = await self._client_factory()
            value = await client.get(key)
            return int(value) if value is not None else 0
        except Exception:
            logger.debug("Redis generation read failed for %s", key, exc_info=True)
            return 0

    async def bump_generation(self, key: str) -> int | None:
        """Atomic increment used for versioned invalidation."""
        try:
            client = await self._client_factory()
            return int(await client.incr(key))
        except Exception:
            logger.debug("Redis generation bump failed for %s", key, exc_info=True)
            return None
