"""
Reconciliation engine tests over in-memory fakes.

Run: pytest backend/tests/test_engine.py -v
"""
from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from shared.models.domain import DayRecord
from shared.models.enums import MatchPhase, PredictionResult, ReconcileStatus, ResultSourceName
from shared.utils.redis_manager import LAST_RUN_KEY

from verifier.config import VerifierSettings
from verifier.errors import (
    FallbackSourceError,
    ReconciliationFailed,
    ResultSourceError,
    ResultSourceRejected,
    ResultSourceUnavailable,
)
from verifier.sources.bbc import BBCScoresSource
from verifier.sources.football_data import FootballDataSource
from conftest import (
    TODAY,
    FakeDayStore,
    FakeFallbackSource,
    FakeResultSource,
    make_candidate,
    make_prediction,
)

DAY = date(2024, 5, 9)


def _store(*days: DayRecord) -> FakeDayStore:
    return FakeDayStore(list(days))


# ── Happy path ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_finished_match_settles_prediction(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    engine = build(store, FakeResultSource([make_candidate()]))

    report = await engine.reconcile()

    assert report.to_wire() == {"updatedCount": 1, "status": "synchronized"}
    settled = store.prediction(DAY, "p1")
    assert settled.result == PredictionResult.WON
    assert settled.score == "3-1"
    assert settled.match_id == "1001"
    assert store.writes == [DAY]


@pytest.mark.asyncio
async def test_over_goals_prediction_settles_end_to_end(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction(prediction="Over 2.5 Goals")]))
    engine = build(store, FakeResultSource([make_candidate()]))

    report = await engine.reconcile()

    assert report.to_wire() == {"updatedCount": 1, "status": "synchronized"}
    settled = store.prediction(DAY, "p1")
    assert settled.result == PredictionResult.WON
    assert settled.score == "3-1"


@pytest.mark.asyncio
async def test_second_run_is_a_no_op(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    source = FakeResultSource([make_candidate()])
    engine = build(store, source)

    await engine.reconcile()
    report = await engine.reconcile()

    assert report.status == ReconcileStatus.UP_TO_DATE
    assert report.updated_count == 0
    assert store.writes == [DAY]
    assert len(source.calls) == 1


@pytest.mark.asyncio
async def test_nothing_pending_skips_source(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction(result="Won", score="2-0")]))
    source = FakeResultSource([make_candidate()])

    report = await build(store, source).reconcile()

    assert report.status == ReconcileStatus.UP_TO_DATE
    assert source.calls == []


@pytest.mark.asyncio
async def test_settled_predictions_are_never_regraded(build) -> None:
    won = make_prediction(id="p-won", result="Won", score="1-0")
    pending = make_prediction(id="p-pending", homeTeam="Everton", awayTeam="Fulham")
    store = _store(DayRecord(date=DAY, predictions=[won, pending]))
    # Arsenal lose 0-2 this time; the stored Won must survive.
    source = FakeResultSource([
        make_candidate(home_score=0, away_score=2),
        make_candidate(id="2002", home_team="Everton", away_team="Fulham", home_score=1, away_score=1),
    ])

    await build(store, source).reconcile()

    assert store.prediction(DAY, "p-won").result == PredictionResult.WON
    assert store.prediction(DAY, "p-won").score == "1-0"
    assert store.prediction(DAY, "p-pending").result == PredictionResult.LOST
    assert store.prediction(DAY, "p-pending").score == "1-1"


@pytest.mark.asyncio
async def test_unchanged_predictions_keep_their_position(build) -> None:
    first = make_prediction(id="a", homeTeam="Everton", awayTeam="Fulham")
    second = make_prediction(id="b")
    third = make_prediction(id="c", homeTeam="Leeds", awayTeam="Hull City")
    store = _store(DayRecord(date=DAY, predictions=[first, second, third]))

    await build(store, FakeResultSource([make_candidate()])).reconcile()

    assert [p.id for p in store.days[DAY].predictions] == ["a", "b", "c"]
    assert [p.result for p in store.days[DAY].predictions] == [
        PredictionResult.PENDING, PredictionResult.WON, PredictionResult.PENDING,
    ]


# ── Window ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_window_starts_at_earliest_pending_day(build) -> None:
    earliest = date(2024, 5, 1)
    store = _store(
        DayRecord(date=earliest, predictions=[make_prediction()]),
        DayRecord(date=DAY, predictions=[make_prediction(id="p2")]),
    )
    source = FakeResultSource([])

    await build(store, source).reconcile()

    assert source.calls == [(earliest, TODAY)]


@pytest.mark.asyncio
async def test_window_is_clamped_to_lookback(build) -> None:
    stale = date(2023, 12, 1)
    store = _store(
        DayRecord(date=stale, predictions=[make_prediction(id="old")]),
        DayRecord(date=DAY, predictions=[make_prediction()]),
    )
    source = FakeResultSource([make_candidate(), make_candidate(id="9", match_date=stale)])

    report = await build(store, source).reconcile()

    assert source.calls == [(date(2024, 3, 11), TODAY)]
    assert store.writes == [DAY]
    assert store.prediction(stale, "old").is_pending
    assert report.date_from == date(2024, 3, 11)


@pytest.mark.asyncio
async def test_only_stale_pending_days_still_fetch_clamped_window(build) -> None:
    stale = date(2023, 1, 1)
    store = _store(DayRecord(date=stale, predictions=[make_prediction()]))
    source = FakeResultSource([make_candidate()])

    report = await build(store, source).reconcile()

    assert source.calls == [(date(2024, 3, 11), TODAY)]
    assert report.status == ReconcileStatus.UP_TO_DATE
    assert report.date_from == date(2024, 3, 11)
    assert store.writes == []
    assert store.prediction(stale, "p1").is_pending


@pytest.mark.asyncio
async def test_future_pending_day_is_not_fetched(build) -> None:
    store = _store(DayRecord(date=date(2024, 5, 11), predictions=[make_prediction()]))
    source = FakeResultSource([])

    report = await build(store, source).reconcile()

    assert report.status == ReconcileStatus.UP_TO_DATE
    assert source.calls == []


@pytest.mark.asyncio
async def test_results_older_than_tolerance_are_ignored(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    # Same fixture played a month earlier.
    source = FakeResultSource([make_candidate(match_date=date(2024, 4, 9))])

    report = await build(store, source).reconcile()

    assert report.updated_count == 0
    assert store.prediction(DAY, "p1").is_pending


# ── Authoritative source failures ───────────────────────────────────────

@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        ResultSourceUnavailable("football_data", "connect timeout"),
        ResultSourceRejected("football_data", 401, "invalid token"),
    ],
)
async def test_source_failure_aborts_without_writes(build, error: ResultSourceError) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    engine = build(store, FakeResultSource(error=error))

    with pytest.raises(ReconciliationFailed) as exc_info:
        await engine.reconcile()

    assert exc_info.value.cause is error
    assert store.writes == []
    assert store.prediction(DAY, "p1").is_pending


@pytest.mark.asyncio
async def test_load_failure_aborts(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    store.fail_load = True
    source = FakeResultSource([make_candidate()])

    with pytest.raises(ReconciliationFailed):
        await build(store, source).reconcile()
    assert source.calls == []


# ── Write failures ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_failed_day_write_does_not_stop_other_days(build) -> None:
    other_day = date(2024, 5, 8)
    store = _store(
        DayRecord(date=other_day, predictions=[make_prediction(id="p0", homeTeam="Everton", awayTeam="Fulham")]),
        DayRecord(date=DAY, predictions=[make_prediction()]),
    )
    store.fail_writes_for.add(other_day)
    source = FakeResultSource([
        make_candidate(),
        make_candidate(id="2002", home_team="Everton", away_team="Fulham", match_date=other_day),
    ])

    report = await build(store, source).reconcile()

    assert report.status == ReconcileStatus.SYNCHRONIZED
    assert report.updated_count == 1
    assert report.changed_days == [DAY]
    assert report.failed_days == [other_day]
    assert store.prediction(other_day, "p0").is_pending


# ── Phases ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_postponed_match_marks_prediction_postponed(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    source = FakeResultSource([
        make_candidate(phase=MatchPhase.POSTPONED, home_score=None, away_score=None),
    ])

    report = await build(store, source).reconcile()

    prediction = store.prediction(DAY, "p1")
    assert prediction.result == PredictionResult.POSTPONED
    assert prediction.score == "-"
    assert report.status == ReconcileStatus.SYNCHRONIZED
    assert report.updated_count == 0


@pytest.mark.asyncio
async def test_live_match_only_records_match_id(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    source = FakeResultSource([make_candidate(phase=MatchPhase.LIVE, home_score=1, away_score=0)])

    report = await build(store, source).reconcile()

    prediction = store.prediction(DAY, "p1")
    assert prediction.is_pending
    assert prediction.match_id == "1001"
    assert report.updated_count == 0


@pytest.mark.asyncio
async def test_unmatched_prediction_stays_pending(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    source = FakeResultSource([make_candidate(home_team="Leeds", away_team="Hull City")])

    report = await build(store, source).reconcile()

    assert report.to_wire() == {"updatedCount": 0, "status": "up_to_date"}
    assert store.writes == []


@pytest.mark.asyncio
async def test_ungradable_market_is_flagged_and_left_pending(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction(prediction="Over 2 Goals")]))
    source = FakeResultSource([make_candidate(home_score=1, away_score=1)])

    report = await build(store, source).reconcile()

    prediction = store.prediction(DAY, "p1")
    assert prediction.is_pending
    assert prediction.match_id == "1001"
    assert report.unresolvable == ["p1"]
    assert report.updated_count == 0


# ── Fallback ────────────────────────────────────────────────────────────

def _bbc(**overrides):
    overrides.setdefault("id", "bbc-0123456789ab")
    overrides.setdefault("source", ResultSourceName.BBC)
    return make_candidate(**overrides)


@pytest.mark.asyncio
async def test_fallback_resolves_bulk_misses(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    fallback = FakeFallbackSource({DAY: [_bbc(home_team="Arsenal", away_team="Chelsea")]})

    report = await build(store, FakeResultSource([]), fallback).reconcile()

    assert report.updated_count == 1
    assert store.prediction(DAY, "p1").match_id == "bbc-0123456789ab"
    assert fallback.calls == [DAY]


@pytest.mark.asyncio
async def test_fallback_fetched_at_most_once_per_day(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[
        make_prediction(id="a", homeTeam="Everton", awayTeam="Fulham"),
        make_prediction(id="b", homeTeam="Leeds", awayTeam="Hull City"),
        make_prediction(id="c", homeTeam="Wolves", awayTeam="Burnley"),
    ]))
    fallback = FakeFallbackSource({DAY: [_bbc(home_team="Leeds United", away_team="Hull City")]})

    await build(store, FakeResultSource([]), fallback).reconcile()

    assert fallback.calls == [DAY]
    assert store.prediction(DAY, "b").result == PredictionResult.WON


@pytest.mark.asyncio
async def test_fallback_not_used_when_bulk_resolves(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    fallback = FakeFallbackSource({})

    await build(store, FakeResultSource([make_candidate()]), fallback).reconcile()

    assert fallback.calls == []


@pytest.mark.asyncio
async def test_fallback_failure_degrades_to_no_match(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    fallback = FakeFallbackSource(error=FallbackSourceError("fake_scraper", "HTTP 503"))

    report = await build(store, FakeResultSource([]), fallback).reconcile()

    assert report.status == ReconcileStatus.UP_TO_DATE
    assert store.prediction(DAY, "p1").is_pending
    assert fallback.calls == [DAY]


def _redirect_loop(request: httpx.Request) -> httpx.Response:
    return httpx.Response(302, headers={"Location": str(request.url)})


@pytest.mark.asyncio
async def test_scraper_request_error_keeps_bulk_results(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[
        make_prediction(id="hit"),
        make_prediction(id="miss", homeTeam="Everton", awayTeam="Fulham"),
    ]))
    fallback = BBCScoresSource(base_url="https://bbc.example.test", transport=httpx.MockTransport(_redirect_loop))
    engine = build(store, FakeResultSource([make_candidate()]), fallback)

    try:
        report = await engine.reconcile()
    finally:
        await engine.close()

    assert report.to_wire() == {"updatedCount": 1, "status": "synchronized"}
    assert report.failed_days == []
    assert store.prediction(DAY, "hit").result == PredictionResult.WON
    assert store.prediction(DAY, "miss").is_pending


@pytest.mark.asyncio
async def test_unexpected_fallback_error_keeps_bulk_results(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[
        make_prediction(id="hit"),
        make_prediction(id="miss", homeTeam="Everton", awayTeam="Fulham"),
    ]))
    fallback = FakeFallbackSource(error=RuntimeError("selector drift"))

    report = await build(store, FakeResultSource([make_candidate()]), fallback).reconcile()

    assert report.updated_count == 1
    assert report.failed_days == []
    assert store.prediction(DAY, "hit").result == PredictionResult.WON
    assert fallback.calls == [DAY]


@pytest.mark.asyncio
async def test_source_request_error_fails_the_run(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    source = FootballDataSource(api_key="test-key", transport=httpx.MockTransport(_redirect_loop))
    engine = build(store, source)

    try:
        with pytest.raises(ReconciliationFailed) as exc_info:
            await engine.reconcile()
    finally:
        await engine.close()

    assert isinstance(exc_info.value.cause, ResultSourceUnavailable)
    assert store.writes == []


@pytest.mark.asyncio
async def test_fallback_circuit_opens_after_repeated_failures(build) -> None:
    days = [date(2024, 5, d) for d in range(1, 10)]
    store = _store(*[DayRecord(date=d, predictions=[make_prediction(id=f"p{d.day}")]) for d in days])
    fallback = FakeFallbackSource(error=FallbackSourceError("fake_scraper", "HTTP 503"))
    settings = VerifierSettings(circuit_failure_threshold=2, circuit_recovery_s=600)
    engine = build(store, FakeResultSource([]), fallback, settings=settings)

    await engine.reconcile()

    assert len(fallback.calls) == 2
    assert engine.fallback_circuit.stats["state"] == "open"


@pytest.mark.asyncio
async def test_fallback_disabled_by_settings(build) -> None:
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    fallback = FakeFallbackSource({DAY: [_bbc()]})
    settings = VerifierSettings(fallback_enabled=False)

    await build(store, FakeResultSource([]), fallback, settings=settings).reconcile()

    assert fallback.calls == []


# ── Redis visibility ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_run_summary_and_flags_written_to_redis(build) -> None:
    redis = MagicMock()
    redis.set_snapshot = AsyncMock()
    redis.flag_unresolvable = AsyncMock()
    store = _store(DayRecord(date=DAY, predictions=[make_prediction(prediction="No Pick")]))

    await build(store, FakeResultSource([make_candidate()]), redis=redis).reconcile()

    redis.flag_unresolvable.assert_awaited_once()
    assert redis.flag_unresolvable.await_args.args[0] == "p1"
    redis.set_snapshot.assert_awaited_once()
    assert redis.set_snapshot.await_args.args[0] == LAST_RUN_KEY


@pytest.mark.asyncio
async def test_failed_run_is_recorded(build) -> None:
    redis = MagicMock()
    redis.set_snapshot = AsyncMock()
    store = _store(DayRecord(date=DAY, predictions=[make_prediction()]))
    engine = build(store, FakeResultSource(error=ResultSourceUnavailable("football_data", "down")), redis=redis)

    with pytest.raises(ReconciliationFailed):
        await engine.reconcile()

    payload = redis.set_snapshot.await_args.args[1]
    assert '"status": "failed"' in payload
