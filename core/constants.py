"""Global constants for the core package.

This module contains shared constants used across the application core.
"""

from typing import Final

# HTTP Client Constants
HTTP_CONNECTION_LIMIT: Final[int] = 10
HTTP_TIMEOUT_CONNECT: Final[float] = 5.0
HTTP_TIMEOUT_SOCK_READ: Final[float] = 10.0
HTTP_TIMEOUT_TOTAL: Final[float] = 30.0

# National bounding box (Brazil)
NATIONAL_MIN_LAT: Final[float] = -35.0
NATIONAL_MAX_LAT: Final[float] = 5.0
NATIONAL_MIN_LNG: Final[float] = -75.0
NATIONAL_MAX_LNG: Final[float] = -30.0

# Brazilian CEP
POSTAL_CODE_DIGITS: Final[int] = 8

# Coverage geometry
CLOSED_RING_TOLERANCE: Final[float] = 1e-6
UNRANKED_SENTINEL: Final[int] = 999_999
MIN_SCORE: Final[float] = 0.0
MAX_SCORE: Final[float] = 10.0

# Cache
COORDINATE_CACHE_PRECISION: Final[int] = 5
DAY_SECONDS: Final[int] = 86_400
