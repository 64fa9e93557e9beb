"""
Circuit breaker for best-effort external calls.

States:
  CLOSED   : normal operation, calls pass through
  OPEN     : too many consecutive failures, calls fail fast
  HALF_OPEN: after cooldown, one probe call decides whether to close again

Only exceptions listed in ``counted`` trip the breaker; anything else passes
through untouched and leaves the failure count alone.
"""
from __future__ import annotations

import time
from enum import Enum
from typing import Any, Callable, Coroutine, TypeVar

from shared.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised when the circuit is open and calls are being rejected."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is OPEN. Retry after {retry_after:.0f}s.")


class CircuitBreaker:
    """
    Async circuit breaker for a single-flow caller.

    Args:
        name: Identifier for logging.
        failure_threshold: Consecutive failures before opening the circuit.
        recovery_timeout_s: Seconds to wait in OPEN state before probing.
        counted: Exception types that count as failures.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout_s: float = 60.0,
        counted: tuple[type[BaseException], ...] = (Exception,),
    ) -> None:
        self.name = name
        self.failure_threshold = max(1, failure_threshold)
        self.recovery_timeout_s = recovery_timeout_s
        self.counted = counted

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float = 0.0

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._opened_at >= self.recovery_timeout_s:
                return CircuitState.HALF_OPEN
        return self._state

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
        }

    async def call(
        self, func: Callable[..., Coroutine[Any, Any, T]], *args: Any, **kwargs: Any
    ) -> T:
        if self.state == CircuitState.OPEN:
            retry_after = self.recovery_timeout_s - (time.monotonic() - self._opened_at)
            raise CircuitBreakerOpen(self.name, max(retry_after, 1.0))

        try:
            result = await func(*args, **kwargs)
        except self.counted as exc:
            self._on_failure(exc)
            raise
        self._on_success()
        return result

    def _on_success(self) -> None:
        if self._state == CircuitState.OPEN:
            logger.info("circuit_breaker_closed", name=self.name)
        self._state = CircuitState.CLOSED
        self._failure_count = 0

    def _on_failure(self, exc: BaseException) -> None:
        self._failure_count += 1
        if self._state == CircuitState.OPEN:
            # Failed half-open probe.
            self._opened_at = time.monotonic()
            logger.warning("circuit_breaker_reopened", name=self.name, error=str(exc))
        elif self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = time.monotonic()
            logger.warning(
                "circuit_breaker_opened",
                name=self.name,
                failures=self._failure_count,
                error=str(exc),
            )
