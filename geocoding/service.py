"""
Postal code geocoding.

Resolves a CEP in two steps: the postal-code lookup gives the address and
the address geocoder places it on the map. Both upstreams are bounded by
a timeout. A failure of the first step is an error; a failure of the
second only leaves the point empty.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol

import aiohttp

from config import GEOCODE_CACHE_TTL_SECONDS, get_geocoder_timeout
from core.exceptions import ExternalServiceError, PostalCodeNotFoundError
from geocoding.models import (
    GeocodeResult,
    GeoPoint,
    normalize_postal_code,
    within_national_bounds,
)

if TYPE_CHECKING:
    from core.cache import JsonCache

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "geocoding:cep:"
COUNTRY_NAME = "Brasil"


class PostalCodeLookup(Protocol):
    async def lookup(self, cep: str) -> dict[str, Any] | None: ...


class AddressSearch(Protocol):
    async def search(self, query: str, *, limit: int = 1) -> list[dict[str, Any]]: ...


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def address_queries(result: GeocodeResult) -> list[str]:
    """Free-text queries from most to least specific, without duplicates."""
    candidates = [
        [result.street, result.district, result.city, result.state, COUNTRY_NAME],
        [result.district, result.city, result.state, COUNTRY_NAME],
        [result.city, result.state, COUNTRY_NAME],
    ]
    queries: list[str] = []
    for parts in candidates:
        if not result.city:
            break
        query = ", ".join(part for part in parts if part)
        if query not in queries:
            queries.append(query)
    return queries


class Geocoder:
    """Postal code to :class:`GeocodeResult`, with a 24 hour cache."""

    def __init__(
        self,
        postal_lookup: PostalCodeLookup,
        address_search: AddressSearch,
        cache: JsonCache | None = None,
        *,
        timeout: float | None = None,
        cache_ttl: int = GEOCODE_CACHE_TTL_SECONDS,
    ) -> None:
        self._postal_lookup = postal_lookup
        self._address_search = address_search
        self._cache = cache
        self._timeout = timeout if timeout is not None else get_geocoder_timeout()
        self._cache_ttl = cache_ttl

    async def geocode(self, postal_code: str) -> GeocodeResult:
        """
        Resolve ``postal_code``.

        Raises:
            InvalidPostalCodeError: not eight digits.
            PostalCodeNotFoundError: the lookup reports the code does not exist.
            ExternalServiceError: the lookup failed or timed out.
        """
        cep = normalize_postal_code(postal_code)
        cache_key = f"{CACHE_KEY_PREFIX}{cep}"

        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached:
                try:
                    return GeocodeResult.model_validate(cached)
                except ValueError:
                    logger.debug("Discarding malformed geocode cache entry %s", cache_key)

        address = await self._lookup_address(cep)
        result = GeocodeResult(
            postal_code=cep,
            formatted_postal_code=_clean(address.get("cep")),
            street=_clean(address.get("logradouro")),
            district=_clean(address.get("bairro")),
            city=_clean(address.get("localidade")),
            state=_clean(address.get("uf")),
        )

        point = await self._locate(result)
        if point is None:
            logger.warning("CEP %s resolved to an address without coordinates", cep)
            return result

        result = result.model_copy(update={"point": point})
        if self._cache is not None:
            await self._cache.set(
                cache_key, result.model_dump(mode="json"), self._cache_ttl
            )
        return result

    async def _lookup_address(self, cep: str) -> dict[str, Any]:
        try:
            address = await asyncio.wait_for(
                self._postal_lookup.lookup(cep), timeout=self._timeout
            )
        except TimeoutError as exc:
            msg = "Tempo esgotado ao consultar o CEP"
            raise ExternalServiceError(msg, {"cep": cep}) from exc
        except aiohttp.ClientError as exc:
            msg = f"Erro ao buscar CEP: {exc}"
            raise ExternalServiceError(msg, {"cep": cep}) from exc

        if address is None:
            msg = "CEP não encontrado"
            raise PostalCodeNotFoundError(msg, {"cep": cep})
        return address

    async def _locate(self, result: GeocodeResult) -> GeoPoint | None:
        for query in address_queries(result):
            try:
                candidates = await asyncio.wait_for(
                    self._address_search.search(query, limit=1),
                    timeout=self._timeout,
                )
            except (TimeoutError, ExternalServiceError, aiohttp.ClientError) as exc:
                logger.warning(
                    "Address geocoding failed for CEP %s: %s",
                    result.postal_code,
                    exc,
                )
                return None

            for candidate in candidates:
                lat, lng = candidate.get("lat"), candidate.get("lon")
                if lat is None or lng is None:
                    continue
                if within_national_bounds(lat, lng):
                    return GeoPoint(lat=lat, lng=lng)
                logger.debug("Ignoring out-of-country match for %r", query)
        return None
