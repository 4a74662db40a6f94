import asyncio
from unittest.mock import AsyncMock

import pytest
from cache_fakes import InMemoryRedis, factory_for, refusing_factory

from core.cache import JsonCache
from core.exceptions import (
    ExternalServiceError,
    InvalidPostalCodeError,
    OutOfBoundsError,
    PostalCodeNotFoundError,
)
from geocoding.models import GeocodeResult, GeoPoint, normalize_postal_code
from geocoding.service import Geocoder, address_queries

VIACEP_ADDRESS = {
    "cep": "01310-100",
    "logradouro": "Avenida Paulista",
    "bairro": "Bela Vista",
    "localidade": "São Paulo",
    "uf": "SP",
}
PAULISTA = {"lat": -23.5614, "lon": -46.6559, "display_name": "Avenida Paulista"}


def _geocoder(lookup_result=VIACEP_ADDRESS, search_results=None, cache=None, timeout=1.0):
    postal = AsyncMock()
    postal.lookup = AsyncMock(return_value=lookup_result)
    address = AsyncMock()
    if isinstance(search_results, Exception):
        address.search = AsyncMock(side_effect=search_results)
    else:
        address.search = AsyncMock(
            side_effect=search_results if search_results is not None else [[PAULISTA]]
        )
    return Geocoder(postal, address, cache, timeout=timeout), postal, address


@pytest.mark.parametrize("value", ["01310-100", " 01310100 ", "01.310-100"])
def test_normalize_postal_code(value: str) -> None:
    assert normalize_postal_code(value) == "01310100"


@pytest.mark.parametrize("value", ["", "1234567", "123456789", "abc", None])
def test_normalize_postal_code_rejects_wrong_length(value) -> None:
    with pytest.raises(InvalidPostalCodeError):
        normalize_postal_code(value)


def test_geopoint_checked_rejects_points_outside_country() -> None:
    with pytest.raises(OutOfBoundsError):
        GeoPoint.checked(45.0, 10.0)
    with pytest.raises(OutOfBoundsError):
        GeoPoint.checked(float("nan"), -46.0)
    assert GeoPoint.checked(-23.5, -46.6) == GeoPoint(lat=-23.5, lng=-46.6)


async def test_geocode_full_resolution() -> None:
    geocoder, postal, address = _geocoder()

    result = await geocoder.geocode("01310-100")

    postal.lookup.assert_awaited_once_with("01310100")
    address.search.assert_awaited_once()
    assert result.postal_code == "01310100"
    assert result.formatted_postal_code == "01310-100"
    assert result.city == "São Paulo"
    assert result.point == GeoPoint(lat=-23.5614, lng=-46.6559)


async def test_geocode_invalid_code_never_calls_upstream() -> None:
    geocoder, postal, _ = _geocoder()

    with pytest.raises(InvalidPostalCodeError):
        await geocoder.geocode("123")

    postal.lookup.assert_not_awaited()


async def test_geocode_unknown_code() -> None:
    geocoder, _, address = _geocoder(lookup_result=None)

    with pytest.raises(PostalCodeNotFoundError):
        await geocoder.geocode("99999999")

    address.search.assert_not_awaited()


async def test_geocode_lookup_timeout_is_external_error() -> None:
    async def _slow(cep):
        await asyncio.sleep(5)

    geocoder, postal, _ = _geocoder(timeout=0.01)
    postal.lookup = AsyncMock(side_effect=_slow)

    with pytest.raises(ExternalServiceError):
        await geocoder.geocode("01310100")


async def test_geocode_falls_back_to_less_specific_queries() -> None:
    geocoder, _, address = _geocoder(search_results=[[], [], [PAULISTA]])

    result = await geocoder.geocode("01310100")

    assert result.point is not None
    queries = [call.args[0] for call in address.search.await_args_list]
    assert queries == [
        "Avenida Paulista, Bela Vista, São Paulo, SP, Brasil",
        "Bela Vista, São Paulo, SP, Brasil",
        "São Paulo, SP, Brasil",
    ]


async def test_geocode_ignores_matches_outside_country() -> None:
    lisbon = {"lat": 38.72, "lon": -9.14}
    geocoder, _, _ = _geocoder(search_results=[[lisbon], [], []])

    result = await geocoder.geocode("01310100")

    assert result.point is None
    assert result.street == "Avenida Paulista"


async def test_geocode_address_failure_is_partial_result() -> None:
    geocoder, _, _ = _geocoder(search_results=ExternalServiceError("down"))

    result = await geocoder.geocode("01310100")

    assert result.point is None
    assert result.city == "São Paulo"


async def test_geocode_caches_only_full_resolutions() -> None:
    redis = InMemoryRedis()
    cache = JsonCache(factory_for(redis))

    partial, _, _ = _geocoder(search_results=[[], [], []], cache=cache)
    await partial.geocode("01310100")
    assert redis.values == {}

    full, postal, _ = _geocoder(cache=cache)
    first = await full.geocode("01310100")
    second = await full.geocode("01310-100")

    assert first.model_dump() == second.model_dump()
    assert postal.lookup.await_count == 1
    assert redis.ttls["geocoding:cep:01310100"] == 86_400


async def test_geocode_works_with_cache_down() -> None:
    geocoder, _, _ = _geocoder(cache=JsonCache(refusing_factory))

    result = await geocoder.geocode("01310100")

    assert result.point is not None


def test_address_queries_skip_missing_parts() -> None:
    result = GeocodeResult(postal_code="70000000", city="Brasília", state="DF")

    assert address_queries(result) == ["Brasília, DF, Brasil"]
