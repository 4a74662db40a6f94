"""Host block utilities for HTTP clients."""

from __future__ import annotations

import os
from collections.abc import Iterable
from urllib.parse import urlparse


def configured_forbidden_hosts() -> set[str]:
    """Hosts listed in ``HTTP_FORBIDDEN_HOSTS`` (comma-separated)."""
    raw = os.getenv("HTTP_FORBIDDEN_HOSTS", "")
    return {item.strip().lower() for item in raw.split(",") if item.strip()}


def is_forbidden_host(url: str, forbidden_hosts: Iterable[str] | None = None) -> bool:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if not host:
        return False
    if forbidden_hosts is None:
        forbidden = configured_forbidden_hosts()
    else:
        forbidden = {item.lower() for item in forbidden_hosts}
    if host in forbidden:
        return True
    return any(host.endswith(f".{item}") for item in forbidden)
