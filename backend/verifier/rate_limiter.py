"""
Per-domain rate limiting with token buckets.
Safe for asyncio; one limiter is shared by every source an engine owns.
"""
from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from typing import Optional
from urllib.parse import urlparse

from shared.utils.logging import get_logger

from verifier.config import VerifierSettings, get_verifier_settings

logger = get_logger(__name__)


class TokenBucket:
    """
    In-process token bucket per domain.
    Refills at rpm / 60 tokens per second; max burst = burst.
    """

    def __init__(self, rpm: int, burst: int) -> None:
        self._rpm = max(1, rpm)
        self._burst = max(1, burst)
        self._tokens = float(self._burst)
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> bool:
        """Consume one token if available. Returns True if allowed, False if rate limited."""
        async with self._lock:
            now = time.monotonic()
            refill = (now - self._last_refill) * (self._rpm / 60.0)
            self._tokens = min(self._burst, self._tokens + refill)
            self._last_refill = now
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False

    async def wait_until_available(self, timeout_s: Optional[float] = None) -> bool:
        """Wait until a token is available or timeout. Returns True if token acquired."""
        deadline = (time.monotonic() + timeout_s) if timeout_s is not None else None
        while True:
            if await self.acquire():
                return True
            pause = 60.0 / self._rpm
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                pause = min(pause, remaining)
            await asyncio.sleep(pause)


class DomainRateLimiter:
    """Per-domain token buckets keyed by URL host."""

    def __init__(self, settings: Optional[VerifierSettings] = None) -> None:
        self._settings = settings or get_verifier_settings()
        self._buckets: dict[str, TokenBucket] = defaultdict(
            lambda: TokenBucket(
                rpm=self._settings.per_domain_rpm,
                burst=self._settings.per_domain_burst,
            )
        )

    @staticmethod
    def domain(url: str) -> str:
        return urlparse(url).netloc or "unknown"

    async def wait_for_slot(self, url: str, timeout_s: Optional[float] = 30.0) -> bool:
        """Wait until a request to url is allowed or timeout. Returns True if allowed."""
        domain = self.domain(url)
        allowed = await self._buckets[domain].wait_until_available(timeout_s)
        if not allowed:
            logger.warning("rate_limit_slot_timeout", domain=domain, timeout_s=timeout_s)
        return allowed
