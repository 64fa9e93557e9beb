"""
Shared fixtures: in-memory day store and scripted result sources.
No DB, Redis or network is touched by anything built here.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Optional

import pytest

from shared.models.domain import DayRecord, PredictionRecord, ResultCandidate
from shared.models.enums import MatchPhase, ResultSourceName

from verifier.config import VerifierSettings
from verifier.engine import ReconciliationEngine
from verifier.errors import PersistenceError
from verifier.sources.base import FallbackSource, ResultSource
from verifier.store import merge_new_predictions

TODAY = date(2024, 5, 10)


def make_prediction(**overrides: Any) -> PredictionRecord:
    data: dict[str, Any] = {
        "id": "p1",
        "homeTeam": "Arsenal",
        "awayTeam": "Chelsea",
        "league": "Premier League",
        "prediction": "Home Team to Win",
        "result": "Pending",
        "score": "-",
    }
    data.update(overrides)
    return PredictionRecord.model_validate(data)


def make_candidate(**overrides: Any) -> ResultCandidate:
    data: dict[str, Any] = {
        "id": "1001",
        "home_team": "Arsenal FC",
        "away_team": "Chelsea FC",
        "home_score": 3,
        "away_score": 1,
        "phase": MatchPhase.FINISHED,
        "match_date": date(2024, 5, 9),
        "source": ResultSourceName.FOOTBALL_DATA,
    }
    data.update(overrides)
    return ResultCandidate(**data)


class FakeDayStore:
    """DayStore over a dict, recording every successful write."""

    def __init__(self, days: Optional[list[DayRecord]] = None) -> None:
        self.days: dict[date, DayRecord] = {d.date: d for d in days or []}
        self.writes: list[date] = []
        self.fail_writes_for: set[date] = set()
        self.fail_load = False

    async def list_days(self) -> list[DayRecord]:
        if self.fail_load:
            raise PersistenceError("history table unavailable")
        return [self.days[k] for k in sorted(self.days)]

    async def get_days_by_user(self, user_id: str) -> list[DayRecord]:
        days = [self.days[k].for_user(user_id) for k in sorted(self.days, reverse=True)]
        return [d for d in days if d.predictions]

    async def update_day(self, day: date, predictions: list[PredictionRecord]) -> None:
        if day in self.fail_writes_for:
            raise PersistenceError(f"write rejected for {day.isoformat()}")
        self.writes.append(day)
        self.days[day] = DayRecord(date=day, predictions=list(predictions))

    async def append_predictions(
        self, day: date, predictions: list[PredictionRecord], user_id: Optional[str] = None
    ) -> int:
        existing = self.days[day].predictions if day in self.days else []
        fresh = merge_new_predictions(existing, predictions)
        self.days[day] = DayRecord(date=day, predictions=list(existing) + fresh)
        return len(fresh)

    def prediction(self, day: date, prediction_id: str) -> PredictionRecord:
        return next(p for p in self.days[day].predictions if p.id == prediction_id)


class FakeResultSource(ResultSource):
    def __init__(self, candidates: Optional[list[ResultCandidate]] = None, error: Optional[Exception] = None) -> None:
        self.candidates = candidates or []
        self.error = error
        self.calls: list[tuple[date, date]] = []

    @property
    def source_name(self) -> str:
        return "fake_api"

    @property
    def base_url(self) -> str:
        return "https://api.example.test"

    async def fetch_results(self, date_from: date, date_to: date) -> list[ResultCandidate]:
        self.calls.append((date_from, date_to))
        if self.error is not None:
            raise self.error
        return list(self.candidates)


class FakeFallbackSource(FallbackSource):
    def __init__(
        self,
        by_day: Optional[dict[date, list[ResultCandidate]]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.by_day = by_day or {}
        self.error = error
        self.calls: list[date] = []

    @property
    def source_name(self) -> str:
        return "fake_scraper"

    @property
    def base_url(self) -> str:
        return "https://scores.example.test"

    async def fetch_day(self, day: date) -> list[ResultCandidate]:
        self.calls.append(day)
        if self.error is not None:
            raise self.error
        return list(self.by_day.get(day, []))


@pytest.fixture
def verifier_settings() -> VerifierSettings:
    return VerifierSettings(
        lookback_days=60,
        match_date_tolerance_days=3,
        fallback_enabled=True,
        circuit_failure_threshold=5,
        circuit_recovery_s=120.0,
    )


@pytest.fixture
def build(verifier_settings: VerifierSettings):
    """Factory for an engine over fakes, with the clock pinned to TODAY."""

    def _build(
        store: FakeDayStore,
        source: ResultSource,
        fallback: Optional[FallbackSource] = None,
        redis: Any = None,
        settings: Optional[VerifierSettings] = None,
    ) -> ReconciliationEngine:
        return ReconciliationEngine(
            store=store,
            source=source,
            fallback=fallback,
            redis=redis,
            settings=settings or verifier_settings,
            today=lambda: TODAY,
        )

    return _build
