from __future__ import annotations

from typing import Any

from redis.exceptions import ConnectionError as RedisConnectionError


class InMemoryRedis:
    """The subset of ``redis.asyncio.Redis`` the cache uses."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: Any, ex: int | None = None) -> bool:
        self.values[key] = str(value)
        self.ttls[key] = ex
        return True

    async def delete(self, key: str) -> int:
        existed = key in self.values
        self.values.pop(key, None)
        self.ttls.pop(key, None)
        return int(existed)

    async def incr(self, key: str) -> int:
        value = int(self.values.get(key, "0")) + 1
        self.values[key] = str(value)
        return value


class UnavailableRedis:
    """Every command fails the way a dropped connection does."""

    async def _fail(self, *args: Any, **kwargs: Any) -> Any:
        msg = "Connection refused"
        raise RedisConnectionError(msg)

    get = set = delete = incr = _fail


def factory_for(client: Any):
    async def _factory() -> Any:
        return client

    return _factory


async def refusing_factory() -> Any:
    msg = "Connection refused"
    raise RedisConnectionError(msg)
