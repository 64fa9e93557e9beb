"""
Prediction Reconciliation Engine.
Loads pending day records, pulls one bulk result set from the authoritative
source, falls back to a per-day scraper on misses, resolves, writes back
only the days that changed.
"""
from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from shared.config import Settings, get_settings
from shared.models.domain import DayRecord, PredictionRecord, ReconcileReport, ResultCandidate
from shared.models.enums import PredictionResult, ReconcileStatus
from shared.utils.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import (
    DAY_WRITE_FAILURES,
    FALLBACK_FETCHES,
    PENDING_DAYS,
    PREDICTIONS_RESOLVED,
    RECONCILE_DURATION,
    RECONCILE_RUNS,
    UNRESOLVABLE_PREDICTIONS,
    atrack_latency,
)
from shared.utils.redis_manager import RedisManager

from verifier.config import VerifierSettings, get_verifier_settings
from verifier.errors import (
    FallbackSourceError,
    PersistenceError,
    ReconciliationFailed,
    ResultSourceError,
)
from verifier.matcher import match
from verifier.rate_limiter import DomainRateLimiter
from verifier.reconciliation import flag_unresolvable, set_last_run
from verifier.resolver import resolve
from verifier.sources.base import FallbackSource, ResultSource
from verifier.sources.bbc import BBCScoresSource
from verifier.sources.football_data import FootballDataSource
from verifier.store import DayStore, SqlDayStore

logger = get_logger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass
class DayOutcome:
    predictions: list[PredictionRecord]
    changed: bool = False
    settled: dict[PredictionResult, int] = field(default_factory=dict)
    unresolvable: list[str] = field(default_factory=list)

    @property
    def settled_count(self) -> int:
        return sum(self.settled.values())


class ReconciliationEngine:
    """Runs reconciliation: load pending days -> bulk fetch -> match/resolve -> write changed days."""

    def __init__(
        self,
        store: DayStore,
        source: ResultSource,
        fallback: Optional[FallbackSource] = None,
        redis: Optional[RedisManager] = None,
        settings: Optional[VerifierSettings] = None,
        today: Callable[[], date] = utc_today,
    ) -> None:
        self._store = store
        self._source = source
        self._settings = settings or get_verifier_settings()
        self._fallback = fallback if self._settings.fallback_enabled else None
        self._redis = redis
        self._today = today
        self._circuit = CircuitBreaker(
            name=f"fallback:{fallback.source_name}" if fallback else "fallback",
            failure_threshold=self._settings.circuit_failure_threshold,
            recovery_timeout_s=self._settings.circuit_recovery_s,
            counted=(FallbackSourceError,),
        )
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        await self._source.start()
        if self._fallback is not None:
            await self._fallback.start()

    async def close(self) -> None:
        await self._source.close()
        if self._fallback is not None:
            await self._fallback.close()

    @property
    def fallback_circuit(self) -> CircuitBreaker:
        return self._circuit

    def window(self, pending_days: list[DayRecord]) -> tuple[date, date]:
        """[max(earliest pending, today - lookback), today]."""
        today = self._today()
        floor = today - timedelta(days=self._settings.lookback_days)
        earliest = min(d.date for d in pending_days)
        return max(earliest, floor), today

    async def reconcile(self) -> ReconcileReport:
        """
        One reconciliation run. Runs are serialized per engine.

        Raises ReconciliationFailed when the day list cannot be loaded or the
        authoritative source fails; nothing is written in that case.
        """
        async with self._lock:
            try:
                async with atrack_latency(RECONCILE_DURATION):
                    report = await self._run()
            except ReconciliationFailed:
                RECONCILE_RUNS.labels(status=ReconcileStatus.FAILED.value).inc()
                await set_last_run(
                    self._redis, ReconcileReport(status=ReconcileStatus.FAILED), self._settings
                )
                raise
            RECONCILE_RUNS.labels(status=report.status.value).inc()
            await set_last_run(self._redis, report, self._settings)
            return report

    async def _run(self) -> ReconcileReport:
        try:
            days = await self._store.list_days()
        except PersistenceError as exc:
            logger.error("reconcile_load_failed", error=str(exc))
            raise ReconciliationFailed(exc) from exc

        pending_days = sorted((d for d in days if d.has_pending), key=lambda d: d.date)
        PENDING_DAYS.set(len(pending_days))
        if not pending_days:
            logger.info("reconcile_nothing_pending", days=len(days))
            return ReconcileReport(status=ReconcileStatus.UP_TO_DATE)

        date_from, date_to = self.window(pending_days)
        if all(d.date > date_to for d in pending_days):
            logger.info(
                "reconcile_only_future_pending",
                date_from=date_from.isoformat(),
                date_to=date_to.isoformat(),
                pending_days=len(pending_days),
            )
            return ReconcileReport(
                status=ReconcileStatus.UP_TO_DATE, date_from=date_from, date_to=date_to
            )

        in_window = [d for d in pending_days if date_from <= d.date <= date_to]
        skipped = len(pending_days) - len(in_window)
        if skipped:
            logger.info("reconcile_days_outside_window", skipped=skipped, date_from=date_from.isoformat())

        try:
            pool = await self._source.fetch_results(date_from, date_to)
        except ResultSourceError as exc:
            logger.error(
                "reconcile_source_failed",
                source=exc.source,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise ReconciliationFailed(exc) from exc

        report = ReconcileReport(
            status=ReconcileStatus.UP_TO_DATE, date_from=date_from, date_to=date_to
        )
        fallback_cache: dict[date, list[ResultCandidate]] = {}

        for day in in_window:
            try:
                outcome = await self._reconcile_day(day, pool, fallback_cache)
            except Exception:
                logger.exception("reconcile_day_error", date=day.date.isoformat())
                report.failed_days.append(day.date)
                continue

            report.unresolvable.extend(outcome.unresolvable)
            if not outcome.changed:
                continue

            try:
                await self._store.update_day(day.date, outcome.predictions)
            except PersistenceError as exc:
                DAY_WRITE_FAILURES.inc()
                logger.error("reconcile_day_write_failed", date=day.date.isoformat(), error=str(exc))
                report.failed_days.append(day.date)
                continue

            report.changed_days.append(day.date)
            report.updated_count += outcome.settled_count
            for result, count in outcome.settled.items():
                PREDICTIONS_RESOLVED.labels(result=result.value).inc(count)

        if report.changed_days:
            report.status = ReconcileStatus.SYNCHRONIZED
        logger.info(
            "reconcile_complete",
            status=report.status.value,
            updated_count=report.updated_count,
            changed_days=len(report.changed_days),
            failed_days=len(report.failed_days),
            unresolvable=len(report.unresolvable),
            date_from=date_from.isoformat(),
            date_to=date_to.isoformat(),
            pool=len(pool),
            fallback_days=len(fallback_cache),
        )
        return report

    def _day_pool(self, day: date, pool: list[ResultCandidate]) -> list[ResultCandidate]:
        earliest = day - timedelta(days=self._settings.match_date_tolerance_days)
        return [c for c in pool if c.match_date is None or c.match_date >= earliest]

    async def _fallback_pool(
        self, day: date, cache: dict[date, list[ResultCandidate]]
    ) -> list[ResultCandidate]:
        if self._fallback is None:
            return []
        if day in cache:
            return cache[day]
        results: list[ResultCandidate] = []
        try:
            results = await self._circuit.call(self._fallback.fetch_day, day)
            FALLBACK_FETCHES.labels(outcome="ok").inc()
        except CircuitBreakerOpen as exc:
            FALLBACK_FETCHES.labels(outcome="circuit_open").inc()
            logger.warning("fallback_circuit_open", date=day.isoformat(), retry_after_s=round(exc.retry_after))
        except FallbackSourceError as exc:
            FALLBACK_FETCHES.labels(outcome="error").inc()
            logger.warning("fallback_fetch_failed", date=day.isoformat(), source=exc.source, error=str(exc))
        except Exception:
            FALLBACK_FETCHES.labels(outcome="error").inc()
            logger.exception("fallback_fetch_error", date=day.isoformat())
        cache[day] = results
        return results

    async def _reconcile_day(
        self,
        day: DayRecord,
        pool: list[ResultCandidate],
        fallback_cache: dict[date, list[ResultCandidate]],
    ) -> DayOutcome:
        day_pool = self._day_pool(day.date, pool)
        outcome = DayOutcome(predictions=[])
        for prediction in day.predictions:
            if not prediction.is_pending:
                outcome.predictions.append(prediction)
                continue

            candidate = match(prediction, day_pool)
            if candidate is None:
                candidate = match(prediction, await self._fallback_pool(day.date, fallback_cache))
            if candidate is None:
                logger.debug(
                    "prediction_unmatched",
                    date=day.date.isoformat(),
                    prediction_id=prediction.id,
                    home=prediction.home_team,
                    away=prediction.away_team,
                )

            resolution = resolve(prediction, candidate)
            outcome.predictions.append(resolution.prediction)
            if resolution.unresolvable_reason:
                UNRESOLVABLE_PREDICTIONS.inc()
                outcome.unresolvable.append(prediction.id)
                await flag_unresolvable(
                    self._redis, resolution.prediction, day.date,
                    resolution.unresolvable_reason, self._settings,
                )
            if not resolution.changed:
                continue
            outcome.changed = True
            if resolution.settled:
                result = resolution.prediction.result
                outcome.settled[result] = outcome.settled.get(result, 0) + 1
        return outcome


def build_engine(
    db: DatabaseManager,
    redis: Optional[RedisManager] = None,
    settings: Optional[Settings] = None,
    verifier_settings: Optional[VerifierSettings] = None,
) -> ReconciliationEngine:
    """Wire the production store and sources. Raises ConfigurationError without an API key."""
    settings = settings or get_settings()
    verifier_settings = verifier_settings or get_verifier_settings()
    source = FootballDataSource(
        api_key=settings.football_data_api_key,
        base_url=settings.football_data_base_url,
        timeout_s=verifier_settings.fetch_timeout_s,
        max_rate_limit_retries=verifier_settings.max_rate_limit_retries,
        max_retry_after_s=verifier_settings.max_retry_after_s,
    )
    fallback = BBCScoresSource(
        base_url=verifier_settings.bbc_base_url,
        rate_limiter=DomainRateLimiter(verifier_settings),
        timeout_s=verifier_settings.fetch_timeout_s,
    )
    return ReconciliationEngine(
        store=SqlDayStore(db),
        source=source,
        fallback=fallback,
        redis=redis,
        settings=verifier_settings,
    )


async def run_reconcile_loop(engine: ReconciliationEngine, interval_s: float, jitter: float) -> None:
    """Run reconciliation on a fixed interval with jitter until cancelled."""
    while True:
        try:
            await engine.reconcile()
        except asyncio.CancelledError:
            raise
        except ReconciliationFailed as exc:
            logger.error("reconcile_run_failed", error=str(exc))
        except Exception:
            logger.exception("reconcile_loop_error")
        j = interval_s * jitter * (2 * random.random() - 1)
        await asyncio.sleep(max(1.0, interval_s + j))
