"""
Async HTTP client wrapper for result-source requests.
Includes bounded 429 retry, timeout management, and metrics collection.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx

from shared.utils.logging import get_logger
from shared.utils.metrics import SOURCE_LATENCY, SOURCE_REQUESTS

logger = get_logger(__name__)


def _retry_after_seconds(resp: httpx.Response, default: float) -> float:
    raw = resp.headers.get("Retry-After")
    if raw is None:
        return default
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return default


class SourceHTTPClient:
    """
    Async HTTP client tailored for match-result sources.

    Only HTTP 429 is retried, a bounded number of times, honouring
    Retry-After. Everything else is returned or raised to the caller,
    which decides how to classify it.
    """

    def __init__(
        self,
        source_name: str,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout_s: float = 15.0,
        max_rate_limit_retries: int = 2,
        max_retry_after_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._source = source_name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s
        self._max_rate_limit_retries = max_rate_limit_retries
        self._max_retry_after_s = max_retry_after_s
        self._default_headers = headers or {}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        """Initialize the underlying httpx client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers,
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            follow_redirects=True,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        Perform a GET request with bounded 429 retry, metrics, and structured logging.

        Returns:
            httpx.Response, whatever its status (the final 429 included).

        Raises:
            httpx.TransportError: On network failures and timeouts.
        """
        if not self._client:
            await self.start()

        attempt = 0
        while True:
            attempt += 1
            start_time = time.perf_counter()
            status = "unknown"
            try:
                resp = await self._client.get(path, params=params)
                status = str(resp.status_code)
            except httpx.HTTPError as exc:
                if isinstance(exc, httpx.TimeoutException):
                    status = "timeout"
                elif isinstance(exc, httpx.TransportError):
                    status = "network"
                else:
                    status = "error"
                logger.warning(
                    "source_transport_error",
                    source=self._source,
                    path=path,
                    error=str(exc),
                    attempt=attempt,
                )
                raise
            finally:
                SOURCE_LATENCY.labels(source=self._source).observe(
                    time.perf_counter() - start_time
                )
                SOURCE_REQUESTS.labels(source=self._source, status=status).inc()

            if resp.status_code == 429 and attempt <= self._max_rate_limit_retries:
                wait_s = min(
                    _retry_after_seconds(resp, default=2.0 * attempt),
                    self._max_retry_after_s,
                )
                logger.warning(
                    "source_rate_limited",
                    source=self._source,
                    path=path,
                    attempt=attempt,
                    wait_s=wait_s,
                )
                await asyncio.sleep(wait_s)
                continue

            logger.debug(
                "source_request_done",
                source=self._source,
                path=path,
                status=resp.status_code,
                latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            return resp
