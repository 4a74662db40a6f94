"""HTTP clients for the geocoding upstreams and their shared plumbing."""

from core.http.blocklist import is_forbidden_host
from core.http.nominatim import NominatimClient
from core.http.request import get_json
from core.http.retry import retry_transient
from core.http.session import cleanup_session, get_session
from core.http.viacep import ViaCepClient

__all__ = [
    "NominatimClient",
    "ViaCepClient",
    "cleanup_session",
    "get_json",
    "get_session",
    "is_forbidden_host",
    "retry_transient",
]
