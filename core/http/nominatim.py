"""
Nominatim HTTP client.

Forward geocoding of Brazilian street addresses into coordinates. The
public instance requires an identifying User-Agent and allows about one
request per second; a 429 surfaces as ``RateLimitError``.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from config import (
    get_geocoder_timeout,
    get_nominatim_search_url,
    get_nominatim_user_agent,
)
from core.exceptions import ExternalServiceError
from core.http.circuit_breaker import guarded_by, nominatim_breaker
from core.http.request import get_json
from core.http.retry import retry_transient
from core.http.session import get_session

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY_CODES = "br"


def parse_place(item: Any) -> dict[str, Any] | None:
    """``{"lat", "lon", "display_name", "type", "importance"}`` or None if unusable."""
    if not isinstance(item, dict):
        return None
    try:
        lat = float(item["lat"])
        lon = float(item["lon"])
    except (KeyError, TypeError, ValueError):
        return None
    return {
        "lat": lat,
        "lon": lon,
        "display_name": item.get("display_name", ""),
        "type": item.get("type"),
        "importance": item.get("importance", 0),
    }


class NominatimClient:
    def __init__(self, *, timeout: float | None = None) -> None:
        self._search_url = get_nominatim_search_url()
        self._user_agent = get_nominatim_user_agent()
        self._timeout = timeout if timeout is not None else get_geocoder_timeout()

    @guarded_by(nominatim_breaker)
    @retry_transient()
    async def search(
        self,
        query: str,
        *,
        limit: int = 1,
        country_codes: str | None = DEFAULT_COUNTRY_CODES,
    ) -> list[dict[str, Any]]:
        """Free-form address search, best match first."""
        params: dict[str, Any] = {"q": query, "format": "json", "limit": limit}
        if country_codes:
            params["countrycodes"] = country_codes

        results = await get_json(
            await get_session(),
            self._search_url,
            service="Nominatim",
            params=params,
            headers={"User-Agent": self._user_agent},
            timeout=aiohttp.ClientTimeout(total=self._timeout),
        )
        if not isinstance(results, list):
            msg = "Nominatim: formato de resposta inesperado"
            raise ExternalServiceError(msg, {"url": self._search_url})

        places = [parse_place(item) for item in results]
        logger.debug("Nominatim returned %d place(s) for %r", len(results), query)
        return [place for place in places if place is not None]
