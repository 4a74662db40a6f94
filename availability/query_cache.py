"""
Versioned cache for coverage lookups.

Every key embeds the current generation number. Invalidation bumps the
generation, which orphans all earlier entries at once; they then expire by
TTL. When the counter cannot be read, generation 0 is used.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from config import COVERAGE_CACHE_TTL_SECONDS
from core.constants import COORDINATE_CACHE_PRECISION

if TYPE_CHECKING:
    from core.cache import JsonCache

logger = logging.getLogger(__name__)

GENERATION_KEY = "coverage:query:generation"
KEY_PREFIX = "coverage:query"


def postal_code_suffix(cep: str) -> str:
    return f"cep:{cep}"


def coordinate_suffix(lat: float, lng: float) -> str:
    precision = COORDINATE_CACHE_PRECISION
    return f"coord:{lat:.{precision}f}:{lng:.{precision}f}"


class QueryCache:
    def __init__(
        self,
        cache: JsonCache | None,
        *,
        ttl_seconds: int = COVERAGE_CACHE_TTL_SECONDS,
    ) -> None:
        self._cache = cache
        self._ttl = ttl_seconds

    async def _key(self, suffix: str) -> str:
        generation = await self._cache.generation(GENERATION_KEY)
        return f"{KEY_PREFIX}:{generation}:{suffix}"

    async def get(self, suffix: str) -> Any | None:
        if self._cache is None:
            return None
        return await self._cache.get(await self._key(suffix))

    async def set(self, suffix: str, value: Any) -> None:
        if self._cache is None:
            return
        await self._cache.set(await self._key(suffix), value, self._ttl)

    async def invalidate(self) -> None:
        """Make every cached lookup unreachable."""
        if self._cache is None:
            return
        generation = await self._cache.bump_generation(GENERATION_KEY)
        if generation is None:
            logger.warning(
                "Could not invalidate coverage cache; stale results expire in %ds",
                self._ttl,
            )
        else:
            logger.info("Coverage cache generation is now %d", generation)
