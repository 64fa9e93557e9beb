"""
Day-record store over the ``history`` table.

Each row is one calendar date holding a JSONB list of predictions. Writes are
whole-list replacements inside a single transaction, so a failed write leaves
the stored day exactly as it was.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Optional, Protocol

from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError

from shared.models.domain import DayRecord, PredictionRecord
from shared.models.orm import HistoryORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

from verifier.errors import PersistenceError
from verifier.team_names import canonical_team_name

logger = get_logger(__name__)


class DayStore(Protocol):
    async def list_days(self) -> list[DayRecord]: ...

    async def get_days_by_user(self, user_id: str) -> list[DayRecord]: ...

    async def update_day(self, day: date, predictions: list[PredictionRecord]) -> None: ...

    async def append_predictions(
        self, day: date, predictions: list[PredictionRecord], user_id: Optional[str] = None
    ) -> int: ...


def _parse_item(item: Any) -> Optional[PredictionRecord]:
    try:
        return PredictionRecord.model_validate(item)
    except ValidationError:
        return None


def parse_predictions(raw: Iterable[Any], day: date) -> list[PredictionRecord]:
    """Validate stored prediction dicts, normalizing legacy key spellings."""
    parsed: list[PredictionRecord] = []
    for idx, item in enumerate(raw or []):
        record = _parse_item(item)
        if record is None:
            logger.warning("history_item_invalid", date=day.isoformat(), index=idx)
            continue
        parsed.append(record)
    return parsed


def merge_day_payload(stored: Iterable[Any], predictions: list[PredictionRecord]) -> list[Any]:
    """
    Payload for a whole-day replacement.

    Stored items that never parsed into a PredictionRecord keep their slot and
    their exact content; every other slot takes the next of ``predictions``.
    """
    incoming = iter(predictions)
    payload: list[Any] = []
    for item in stored or []:
        if _parse_item(item) is None:
            payload.append(item)
            continue
        nxt = next(incoming, None)
        if nxt is not None:
            payload.append(nxt.to_store())
    payload.extend(p.to_store() for p in incoming)
    return payload


def _team_key(p: PredictionRecord) -> tuple[str, str]:
    return canonical_team_name(p.home_team), canonical_team_name(p.away_team)


def merge_new_predictions(
    existing: list[PredictionRecord], incoming: list[PredictionRecord]
) -> list[PredictionRecord]:
    """Incoming predictions whose (home, away) pairing is not already on the day."""
    seen = {_team_key(p) for p in existing}
    fresh: list[PredictionRecord] = []
    for p in incoming:
        key = _team_key(p)
        if key in seen:
            continue
        seen.add(key)
        fresh.append(p)
    return fresh


class SqlDayStore:
    """DayStore backed by PostgreSQL via SQLAlchemy async sessions."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    @staticmethod
    def _to_day(row: HistoryORM) -> DayRecord:
        return DayRecord(date=row.date, predictions=parse_predictions(row.predictions, row.date))

    @staticmethod
    def _owned_day(row: HistoryORM) -> DayRecord:
        """Read view where predictions without an owner inherit the row owner."""
        predictions = parse_predictions(row.predictions, row.date)
        if row.user_id:
            predictions = [
                p if p.user_id else p.model_copy(update={"user_id": row.user_id})
                for p in predictions
            ]
        return DayRecord(date=row.date, predictions=predictions)

    async def list_days(self) -> list[DayRecord]:
        try:
            async with self._db.read_session() as session:
                result = await session.execute(select(HistoryORM).order_by(HistoryORM.date))
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to load history: {exc}") from exc
        return [self._to_day(r) for r in rows]

    async def get_days_by_user(self, user_id: str) -> list[DayRecord]:
        try:
            async with self._db.read_session() as session:
                stmt = (
                    select(HistoryORM)
                    .where(
                        or_(
                            HistoryORM.user_id == user_id,
                            HistoryORM.predictions.contains([{"userId": user_id}]),
                        )
                    )
                    .order_by(HistoryORM.date.desc())
                )
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to load history for user {user_id}: {exc}") from exc
        days = [self._owned_day(r).for_user(user_id) for r in rows]
        return [d for d in days if d.predictions]

    async def update_day(self, day: date, predictions: list[PredictionRecord]) -> None:
        try:
            async with self._db.write_session() as session:
                result = await session.execute(
                    select(HistoryORM).where(HistoryORM.date == day).with_for_update()
                )
                row = result.scalar_one_or_none()
                if row is None:
                    raise PersistenceError(f"no history row for {day.isoformat()}")
                payload = merge_day_payload(row.predictions, predictions)
                row.predictions = payload
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to write {day.isoformat()}: {exc}") from exc
        logger.debug("history_day_written", date=day.isoformat(), predictions=len(payload))

    async def append_predictions(
        self, day: date, predictions: list[PredictionRecord], user_id: Optional[str] = None
    ) -> int:
        """Append to a day (creating it if needed), skipping pairings already present."""
        try:
            async with self._db.write_session() as session:
                result = await session.execute(
                    select(HistoryORM).where(HistoryORM.date == day).with_for_update()
                )
                row = result.scalar_one_or_none()
                if row is None:
                    fresh = merge_new_predictions([], predictions)
                    session.add(
                        HistoryORM(
                            date=day,
                            user_id=user_id,
                            predictions=[p.to_store() for p in fresh],
                        )
                    )
                else:
                    existing = parse_predictions(row.predictions, day)
                    fresh = merge_new_predictions(existing, predictions)
                    if fresh:
                        row.predictions = list(row.predictions or []) + [p.to_store() for p in fresh]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to append to {day.isoformat()}: {exc}") from exc
        logger.info(
            "history_predictions_appended",
            date=day.isoformat(),
            offered=len(predictions),
            appended=len(fresh),
        )
        return len(fresh)
