"""Centralized configuration for environment variables and external APIs.

This module is the single source of truth for configuration used across the
application. Import constants from here rather than calling os.getenv directly
in multiple places.
"""

from __future__ import annotations

import os
from typing import Final

from dotenv import load_dotenv

from core.constants import DAY_SECONDS

# Load environment variables from .env if present
load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# --- Postal code lookup (ViaCEP) ---
DEFAULT_VIACEP_BASE_URL: Final[str] = "https://viacep.com.br/ws"

# --- Nominatim ---
DEFAULT_NOMINATIM_BASE_URL: Final[str] = "https://nominatim.openstreetmap.org"
DEFAULT_NOMINATIM_USER_AGENT: Final[str] = "BroadbandCoverage/1.0"

# --- Uploads ---
MAX_UPLOAD_BYTES: Final[int] = _int_env("MAX_UPLOAD_BYTES", 25 * 1024 * 1024)
# Decompressed size of the .kml entry inside a KMZ.
MAX_KML_BYTES: Final[int] = _int_env("MAX_KML_BYTES", MAX_UPLOAD_BYTES)

# --- Cache TTLs ---
COVERAGE_CACHE_TTL_SECONDS: Final[int] = _int_env(
    "COVERAGE_CACHE_TTL_SECONDS", DAY_SECONDS
)
GEOCODE_CACHE_TTL_SECONDS: Final[int] = _int_env(
    "GEOCODE_CACHE_TTL_SECONDS", DAY_SECONDS
)


def get_viacep_base_url() -> str:
    return os.getenv("VIACEP_BASE_URL", DEFAULT_VIACEP_BASE_URL).rstrip("/")


def get_nominatim_base_url() -> str:
    return os.getenv("NOMINATIM_BASE_URL", DEFAULT_NOMINATIM_BASE_URL).rstrip("/")


def get_nominatim_search_url() -> str:
    return f"{get_nominatim_base_url()}/search"


def get_nominatim_user_agent() -> str:
    return os.getenv("NOMINATIM_USER_AGENT", DEFAULT_NOMINATIM_USER_AGENT)


def get_geocoder_timeout() -> float:
    """Upper bound in seconds for a single call to a geocoding upstream."""
    return _float_env("GEOCODER_TIMEOUT_SECONDS", 8.0)


DEFAULT_CORS_ORIGINS: Final[str] = "http://localhost:3000,http://localhost:8080"


def get_cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "").strip() or DEFAULT_CORS_ORIGINS
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


__all__ = [
    "COVERAGE_CACHE_TTL_SECONDS",
    "GEOCODE_CACHE_TTL_SECONDS",
    "MAX_UPLOAD_BYTES",
    "get_cors_origins",
    "get_geocoder_timeout",
    "get_nominatim_base_url",
    "get_nominatim_search_url",
    "get_nominatim_user_agent",
    "get_viacep_base_url",
]
