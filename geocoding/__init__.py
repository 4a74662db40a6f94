"""Postal code and address geocoding."""

from geocoding.models import (
    GeocodeResult,
    GeoPoint,
    normalize_postal_code,
    within_national_bounds,
)
from geocoding.service import Geocoder

__all__ = [
    "GeoPoint",
    "GeocodeResult",
    "Geocoder",
    "normalize_postal_code",
    "within_national_bounds",
]
