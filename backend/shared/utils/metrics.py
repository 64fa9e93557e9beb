"""
Lightweight metrics collection for SafeScore.
Wraps prometheus_client with async-safe patterns.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Gauge, Histogram, Info, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
SOURCE_REQUESTS = Counter(
    "ss_source_requests_total",
    "Total result-source HTTP requests",
    ["source", "status"],
)
RECONCILE_RUNS = Counter(
    "ss_reconcile_runs_total",
    "Reconciliation runs by final status",
    ["status"],
)
PREDICTIONS_RESOLVED = Counter(
    "ss_predictions_resolved_total",
    "Predictions moved out of Pending",
    ["result"],
)
FALLBACK_FETCHES = Counter(
    "ss_fallback_fetches_total",
    "Per-day fallback scraper fetches",
    ["outcome"],
)
DAY_WRITE_FAILURES = Counter(
    "ss_day_write_failures_total",
    "Day records whose write-back failed",
)
UNRESOLVABLE_PREDICTIONS = Counter(
    "ss_unresolvable_predictions_total",
    "Predictions left Pending because their market could not be graded",
)

# ── Histograms ──────────────────────────────────────────────────────────
SOURCE_LATENCY = Histogram(
    "ss_source_latency_seconds",
    "Result-source request latency in seconds",
    ["source"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0),
)
RECONCILE_DURATION = Histogram(
    "ss_reconcile_duration_seconds",
    "Wall time of a full reconciliation run",
    buckets=(0.5, 1, 2.5, 5, 10, 30, 60, 120),
)

# ── Gauges ──────────────────────────────────────────────────────────────
PENDING_DAYS = Gauge(
    "ss_pending_days",
    "Day records holding at least one Pending prediction at run start",
)

# ── Info ────────────────────────────────────────────────────────────────
SERVICE_INFO = Info("ss_service", "Service build information")


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if labels:
            histogram.labels(**labels).observe(elapsed)
        else:
            histogram.observe(elapsed)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    SERVICE_INFO.info({
        "environment": settings.environment.value,
        "role": settings.service_role.value,
        "instance": settings.instance_id,
    })
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
