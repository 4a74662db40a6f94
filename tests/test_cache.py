import pytest
from cache_fakes import InMemoryRedis, UnavailableRedis, factory_for, refusing_factory

from availability.query_cache import (
    GENERATION_KEY,
    QueryCache,
    coordinate_suffix,
    postal_code_suffix,
)
from core.cache import JsonCache


@pytest.mark.asyncio
async def test_json_cache_round_trip_with_ttl() -> None:
    redis = InMemoryRedis()
    cache = JsonCache(factory_for(redis))

    assert await cache.set("k", {"a": [1, 2]}, 60) is True
    assert await cache.get("k") == {"a": [1, 2]}
    assert redis.ttls["k"] == 60
    assert await cache.delete("k") is True
    assert await cache.get("k") is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "factory", [factory_for(UnavailableRedis()), refusing_factory]
)
async def test_json_cache_outage_is_a_miss(factory) -> None:
    cache = JsonCache(factory)

    assert await cache.get("k") is None
    assert await cache.set("k", {"a": 1}, 60) is False
    assert await cache.delete("k") is False
    assert await cache.generation("g") == 0
    assert await cache.bump_generation("g") is None


@pytest.mark.asyncio
async def test_json_cache_ignores_corrupt_entries() -> None:
    redis = InMemoryRedis()
    redis.values["k"] = "{not json"

    assert await JsonCache(factory_for(redis)).get("k") is None


def test_cache_key_suffixes() -> None:
    assert postal_code_suffix("01310100") == "cep:01310100"
    assert coordinate_suffix(-23.561414, -46.6558819) == "coord:-23.56141:-46.65588"


@pytest.mark.asyncio
async def test_query_cache_generation_isolates_entries() -> None:
    redis = InMemoryRedis()
    query_cache = QueryCache(JsonCache(factory_for(redis)), ttl_seconds=120)

    await query_cache.set("cep:01310100", {"reason": "ok"})
    assert "coverage:query:0:cep:01310100" in redis.values
    assert await query_cache.get("cep:01310100") == {"reason": "ok"}

    await query_cache.invalidate()

    assert redis.values[GENERATION_KEY] == "1"
    assert await query_cache.get("cep:01310100") is None


@pytest.mark.asyncio
async def test_query_cache_without_backend_is_inert() -> None:
    query_cache = QueryCache(None)

    await query_cache.set("cep:1", {"reason": "ok"})
    await query_cache.invalidate()

    assert await query_cache.get("cep:1") is None
