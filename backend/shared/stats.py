"""
Accuracy reporting over resolved predictions.
Pure functions; callers load the records.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from shared.models.domain import AggregateStats, DayRecord, PendingMatch, PredictionRecord
from shared.models.enums import PredictionResult


def _percent(won: int, graded: int) -> int:
    if graded <= 0:
        return 0
    value = Decimal(won) * 100 / Decimal(graded)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_accuracy(
    records: Iterable[PredictionRecord],
    user_id: Optional[str] = None,
) -> AggregateStats:
    """
    Bucket every record into exactly one of won/lost/postponed/pending.

    accuracy = round(won / (total - pending - postponed) * 100), 0 when no
    record has been graded. ``user_id`` restricts the count to one owner.
    """
    won = lost = pending = postponed = total = 0
    for record in records:
        if user_id is not None and record.user_id != user_id:
            continue
        total += 1
        if record.result == PredictionResult.WON:
            won += 1
        elif record.result == PredictionResult.LOST:
            lost += 1
        elif record.result == PredictionResult.POSTPONED:
            postponed += 1
        else:
            pending += 1
    return AggregateStats(
        total=total,
        won=won,
        lost=lost,
        pending=pending,
        postponed=postponed,
        accuracy=_percent(won, total - pending - postponed),
    )


def accuracy_for_days(days: Iterable[DayRecord], user_id: Optional[str] = None) -> AggregateStats:
    return compute_accuracy((p for d in days for p in d.predictions), user_id=user_id)


def list_pending(days: Iterable[DayRecord]) -> list[PendingMatch]:
    """Pending predictions, newest day first."""
    out: list[PendingMatch] = []
    for day in sorted(days, key=lambda d: d.date, reverse=True):
        for p in day.pending:
            out.append(
                PendingMatch(
                    id=p.id,
                    date=day.date,
                    home_team=p.home_team,
                    away_team=p.away_team,
                    prediction=p.prediction,
                    league=p.league,
                    user_id=p.user_id,
                )
            )
    return out
