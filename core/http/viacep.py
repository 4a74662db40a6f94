"""
ViaCEP HTTP client.

Resolves a Brazilian postal code (CEP) into its street address. ViaCEP
answers an unknown but well-formed CEP with ``200 {"erro": true}`` and a
malformed one with ``400``; both mean there is no address to return.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from config import get_geocoder_timeout, get_viacep_base_url
from core.exceptions import ExternalServiceError
from core.http.circuit_breaker import guarded_by, viacep_breaker
from core.http.request import get_json
from core.http.retry import retry_transient
from core.http.session import get_session

logger = logging.getLogger(__name__)


def _is_missing(data: dict[str, Any]) -> bool:
    return str(data.get("erro", "")).lower() == "true"


class ViaCepClient:
    def __init__(self, *, timeout: float | None = None) -> None:
        self._base_url = get_viacep_base_url()
        self._timeout = timeout if timeout is not None else get_geocoder_timeout()

    @guarded_by(viacep_breaker)
    @retry_transient()
    async def lookup(self, cep: str) -> dict[str, Any] | None:
        """
        Fetch the address for an 8-digit CEP.

        Returns ``None`` when ViaCEP has no record for the code. Transport
        and status failures raise ``ExternalServiceError``.
        """
        url = f"{self._base_url}/{cep}/json/"
        data = await get_json(
            await get_session(),
            url,
            service="ViaCEP",
            missing_on=(400,),
            timeout=aiohttp.ClientTimeout(total=self._timeout),
        )
        if data is None:
            return None
        if not isinstance(data, dict):
            msg = "ViaCEP: formato de resposta inesperado"
            raise ExternalServiceError(msg, {"url": url})
        if _is_missing(data):
            logger.debug("ViaCEP has no record for %s", cep)
            return None
        return data
