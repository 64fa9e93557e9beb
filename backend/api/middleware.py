"""
API middleware stack.

- X-Request-ID propagation, bound into the structlog context for the request
- One structured access log line per request
- Error envelopes for reconciler failures that escape a route
- CORS
- Per-client request budgets, with a tighter one for triggering a run
"""
from __future__ import annotations

import time
import uuid
from collections import deque
from dataclasses import dataclass, field

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from shared.config import get_settings
from shared.models.enums import ReconcileStatus
from shared.utils.logging import bind_context, get_logger, unbind_context

from verifier.errors import ConfigurationError, PersistenceError

logger = get_logger(__name__)

BUDGET_WINDOW_S = 60.0
RECONCILE_ROUTE = ("POST", "/v1/reconcile")
_PROBE_PATHS = frozenset({"/health", "/ready", "/metrics"})


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 2)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Reuses the caller's X-Request-ID or mints one, and echoes it back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request.state.request_id = request_id
        bind_context(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            unbind_context("request_id")
        response.headers["X-Request-ID"] = request_id
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _PROBE_PATHS:
            return await call_next(request)
        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "http_request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=_elapsed_ms(start),
            )
            raise
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=_elapsed_ms(start),
            client=_client_ip(request),
        )
        return response


@dataclass
class _Budget:
    limit: int
    hits: dict[str, deque] = field(default_factory=dict)

    def take(self, key: str, now: float) -> int:
        """Record one hit for key; returns the remaining budget, or -1 when exhausted."""
        window = self.hits.setdefault(key, deque())
        while window and now - window[0] >= BUDGET_WINDOW_S:
            window.popleft()
        if len(window) >= self.limit:
            return -1
        window.append(now)
        return self.limit - len(window)


class RequestBudgetMiddleware(BaseHTTPMiddleware):
    """
    Sliding one-minute request budgets per client IP, held in process memory.

    ``POST /v1/reconcile`` draws from its own, smaller budget.
    """

    def __init__(self, app: FastAPI, rpm: int = 120, reconcile_rpm: int = 6) -> None:
        super().__init__(app)
        self._general = _Budget(limit=max(1, rpm))
        self._reconcile = _Budget(limit=max(1, reconcile_rpm))

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _PROBE_PATHS:
            return await call_next(request)

        budget = self._reconcile if (request.method, request.url.path) == RECONCILE_ROUTE else self._general
        client = _client_ip(request)
        remaining = budget.take(client, time.monotonic())
        if remaining < 0:
            logger.warning("request_budget_exhausted", client=client, path=request.url.path, limit=budget.limit)
            return JSONResponse(
                status_code=429,
                content={"error": "rate_limit_exceeded", "message": f"Max {budget.limit} requests per minute"},
                headers={"Retry-After": str(int(BUDGET_WINDOW_S))},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(budget.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ConfigurationError)
    async def on_configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        # Raised by get_engine; answered in the reconcile response shape.
        logger.error("service_misconfigured", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"updatedCount": 0, "status": ReconcileStatus.FAILED.value, "error": str(exc)},
        )

    @app.exception_handler(PersistenceError)
    async def on_persistence_error(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("store_unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=503, content={"error": "store_unavailable", "message": str(exc)})

    @app.exception_handler(Exception)
    async def on_unhandled(request: Request, exc: Exception) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "request_id": request_id,
            },
        )


def setup_middleware(app: FastAPI) -> None:
    """Install the stack; the last middleware added runs first."""
    settings = get_settings()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining"],
    )
    app.add_middleware(
        RequestBudgetMiddleware,
        rpm=settings.api_rate_limit_per_minute,
        reconcile_rpm=settings.api_reconcile_per_minute,
    )
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(AccessLogMiddleware)
    setup_exception_handlers(app)
