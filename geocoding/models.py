"""Geocoding value types."""

from __future__ import annotations

import math
import re

from pydantic import BaseModel, ConfigDict

from core.constants import (
    NATIONAL_MAX_LAT,
    NATIONAL_MAX_LNG,
    NATIONAL_MIN_LAT,
    NATIONAL_MIN_LNG,
    POSTAL_CODE_DIGITS,
)
from core.exceptions import InvalidPostalCodeError, OutOfBoundsError

_NON_DIGITS = re.compile(r"\D")


def normalize_postal_code(value: str | None) -> str:
    """
    Strip everything but digits from a CEP.

    Raises:
        InvalidPostalCodeError: the result is not exactly eight digits.
    """
    digits = _NON_DIGITS.sub("", value or "")
    if len(digits) != POSTAL_CODE_DIGITS:
        msg = f"CEP inválido. Deve conter {POSTAL_CODE_DIGITS} dígitos"
        raise InvalidPostalCodeError(msg, {"cep": value})
    return digits


def within_national_bounds(lat: float, lng: float) -> bool:
    return (
        NATIONAL_MIN_LAT <= lat <= NATIONAL_MAX_LAT
        and NATIONAL_MIN_LNG <= lng <= NATIONAL_MAX_LNG
    )


class GeoPoint(BaseModel):
    """A WGS84 point. ``checked`` builds one that is inside the national box."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float

    @classmethod
    def checked(cls, lat: float, lng: float) -> GeoPoint:
        """
        Raises:
            OutOfBoundsError: non-finite values or a point outside the country.
        """
        if not (math.isfinite(lat) and math.isfinite(lng)):
            msg = "Coordenadas inválidas"
            raise OutOfBoundsError(msg, {"lat": lat, "lng": lng})
        if not within_national_bounds(lat, lng):
            msg = "Coordenadas fora dos limites do Brasil"
            raise OutOfBoundsError(msg, {"lat": lat, "lng": lng})
        return cls(lat=lat, lng=lng)


class GeocodeResult(BaseModel):
    """
    Resolution of a postal code.

    ``point`` is None when the address is known but could not be placed on
    the map; that is a partial success, not an error.
    """

    postal_code: str
    point: GeoPoint | None = None
    formatted_postal_code: str | None = None
    street: str | None = None
    district: str | None = None
    city: str | None = None
    state: str | None = None
