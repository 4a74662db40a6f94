"""Retry policy for geocoding upstream calls (tenacity)."""

from __future__ import annotations

import asyncio
import logging

from aiohttp import ClientError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

# Connection resets, DNS failures and read timeouts. Status errors are
# raised as ExternalServiceError by get_json and are final.
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (ClientError, asyncio.TimeoutError)


def retry_transient(attempts: int = 3, base_delay: float = 0.5):
    """
    Retry an async call on transport failures.

    Args:
        attempts: Total number of tries, the first one included.
        base_delay: First backoff in seconds; doubles on every retry.
    """
    return retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay, exp_base=2),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
