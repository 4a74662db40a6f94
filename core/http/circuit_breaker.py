"""
Circuit breakers for the geocoding upstreams.

ViaCEP and Nominatim are public services with no SLA. After a run of
failures the breaker opens and lookups fail fast with :class:`CircuitOpen`
(an ``ExternalServiceError``, so callers report a transient error) until
the recovery timeout lets a single trial call through.
"""

from __future__ import annotations

import functools
import logging
import time
from enum import Enum

from core.exceptions import CoverageServiceError, ExternalServiceError

logger = logging.getLogger(__name__)


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitOpen(ExternalServiceError):
    """A call was refused without reaching the upstream."""

    def __init__(self, service: str, resets_in: float) -> None:
        super().__init__(
            f"{service} indisponível; nova tentativa em {resets_in:.0f}s",
            {"service": service, "resets_in": resets_in},
        )
        self.service = service
        self.resets_in = resets_in


class CircuitBreaker:
    """
    Failure counter for one upstream.

    ``failure_threshold`` consecutive failures open the circuit; after
    ``recovery_timeout`` seconds it turns half-open and the next call is a
    trial call whose outcome closes or re-opens it.
    """

    def __init__(
        self,
        service: str,
        *,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
    ) -> None:
        self.service = service
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.reset()

    def reset(self) -> None:
        self._failures = 0
        self._opened_at: float | None = None
        self._state = BreakerState.CLOSED

    @property
    def state(self) -> BreakerState:
        if (
            self._state is BreakerState.OPEN
            and self._opened_at is not None
            and self._elapsed() >= self.recovery_timeout
        ):
            self._state = BreakerState.HALF_OPEN
        return self._state

    def _elapsed(self) -> float:
        return time.monotonic() - (self._opened_at or 0.0)

    def _open(self) -> None:
        self._state = BreakerState.OPEN
        self._opened_at = time.monotonic()

    def before_call(self) -> None:
        """Raise :class:`CircuitOpen` unless a call may go through."""
        if self.state is BreakerState.OPEN:
            raise CircuitOpen(self.service, max(0.0, self.recovery_timeout - self._elapsed()))

    def record_success(self) -> None:
        if self._state is not BreakerState.CLOSED:
            logger.info("%s recovered; circuit closed", self.service)
        self.reset()

    def record_failure(self) -> None:
        self._failures += 1
        if self._state is BreakerState.HALF_OPEN:
            self._open()
            logger.warning("%s trial call failed; circuit re-opened", self.service)
        elif (
            self._state is BreakerState.CLOSED
            and self._failures >= self.failure_threshold
        ):
            self._open()
            logger.warning(
                "%s failed %d times in a row; circuit opened for %.0fs",
                self.service,
                self._failures,
                self.recovery_timeout,
            )


viacep_breaker = CircuitBreaker("ViaCEP")
nominatim_breaker = CircuitBreaker("Nominatim")


def upstream_states() -> dict[str, str]:
    """Current state of every upstream breaker, for health reporting."""
    return {
        breaker.service: breaker.state.value
        for breaker in (viacep_breaker, nominatim_breaker)
    }


def guarded_by(breaker: CircuitBreaker):
    """
    Run an async upstream call through ``breaker``.

    Domain answers such as "CEP does not exist" raised as
    ``CoverageServiceError`` count as a healthy upstream; only
    ``ExternalServiceError`` and unexpected exceptions count as failures.
    """

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            breaker.before_call()
            try:
                result = await fn(*args, **kwargs)
            except ExternalServiceError:
                breaker.record_failure()
                raise
            except CoverageServiceError:
                breaker.record_success()
                raise
            except Exception:
                breaker.record_failure()
                raise
            breaker.record_success()
            return result

        return wrapper

    return decorator
