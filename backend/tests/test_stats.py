"""Accuracy reporting and pending-list tests."""
from __future__ import annotations

from datetime import date

from shared.models.domain import DayRecord
from shared.stats import accuracy_for_days, compute_accuracy, list_pending
from conftest import make_prediction


def _records(*results: str, user: str | None = None):
    return [make_prediction(id=f"p{i}", result=r, userId=user) for i, r in enumerate(results)]


def test_accuracy_excludes_pending_and_postponed() -> None:
    stats = compute_accuracy(_records("Won", "Won", "Won", "Lost", "Pending", "Postponed"))
    assert stats.total == 6
    assert (stats.won, stats.lost, stats.pending, stats.postponed) == (3, 1, 1, 1)
    assert stats.accuracy == 75


def test_accuracy_rounds_half_up() -> None:
    stats = compute_accuracy(_records("Won", *["Lost"] * 7))
    assert stats.accuracy == 13


def test_accuracy_is_zero_without_graded_predictions() -> None:
    assert compute_accuracy([]).accuracy == 0
    assert compute_accuracy(_records("Pending", "Postponed")).accuracy == 0


def test_every_record_lands_in_one_bucket() -> None:
    stats = compute_accuracy(_records("Won", "Lost", "Pending", "Postponed", "garbage"))
    assert stats.won + stats.lost + stats.pending + stats.postponed == stats.total == 5


def test_accuracy_filtered_by_user() -> None:
    records = _records("Won", "Won", user="alice") + _records("Lost", "Lost", user="bob")
    assert compute_accuracy(records, user_id="alice").accuracy == 100
    assert compute_accuracy(records, user_id="bob").accuracy == 0
    assert compute_accuracy(records).accuracy == 50


def test_accuracy_for_days_spans_all_days() -> None:
    days = [
        DayRecord(date=date(2024, 5, 1), predictions=_records("Won", "Lost")),
        DayRecord(date=date(2024, 5, 2), predictions=_records("Won")),
    ]
    stats = accuracy_for_days(days)
    assert stats.total == 3
    assert stats.accuracy == 67


def test_list_pending_newest_day_first() -> None:
    days = [
        DayRecord(date=date(2024, 5, 1), predictions=[make_prediction(id="old")]),
        DayRecord(date=date(2024, 5, 3), predictions=[
            make_prediction(id="new", homeTeam="Leeds", awayTeam="Hull City"),
            make_prediction(id="done", result="Won"),
        ]),
    ]
    pending = list_pending(days)
    assert [m.id for m in pending] == ["new", "old"]
    assert pending[0].date == date(2024, 5, 3)
    dumped = pending[0].model_dump(mode="json", by_alias=True)
    assert dumped["homeTeam"] == "Leeds"
    assert dumped["date"] == "2024-05-03"
