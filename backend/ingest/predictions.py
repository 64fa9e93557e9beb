"""
Prediction intake.

The generation engine is opaque: anything implementing ``PredictionGenerator``
can be plugged in. Its output is stamped Pending, grouped by match date and
appended to the day records that reconciliation later resolves.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from datetime import date as date_type
from typing import Literal, Optional, Protocol

from pydantic import BaseModel, Field

from shared.models.domain import UNSCORED, PredictionRecord
from shared.models.enums import PredictionResult, RiskLevel
from shared.utils.logging import get_logger

from verifier.engine import utc_today
from verifier.errors import ReconcilerError
from verifier.store import DayStore

logger = get_logger(__name__)


class GenerationError(ReconcilerError):
    """The generation engine failed to produce predictions."""


class GenerationRequest(BaseModel):
    leagues: list[str] = Field(min_length=1)
    day: Literal["today", "tomorrow"] = "today"
    date: Optional[date_type] = None

    def target_date(self, today: date) -> date:
        if self.date is not None:
            return self.date
        return today + timedelta(days=1) if self.day == "tomorrow" else today


class PredictionGenerator(Protocol):
    async def generate(
        self, request: GenerationRequest, risk_level: RiskLevel
    ) -> list[PredictionRecord]: ...


def _match_day(prediction: PredictionRecord, default: date) -> date:
    raw = (prediction.match_time or "")[:10]
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return default


async def record_generated(
    generator: PredictionGenerator,
    store: DayStore,
    request: GenerationRequest,
    risk_level: RiskLevel,
    user_id: Optional[str] = None,
    today: Optional[date] = None,
) -> dict[date, int]:
    """
    Generate predictions and append them to their day records.

    Returns the number of predictions appended per day; pairings already
    present on a day are skipped by the store.
    """
    target = request.target_date(today or utc_today())
    try:
        generated = await generator.generate(request, risk_level)
    except Exception as exc:
        raise GenerationError(f"generation failed: {exc}") from exc

    by_day: dict[date, list[PredictionRecord]] = defaultdict(list)
    for prediction in generated:
        fresh = prediction.model_copy(
            update={
                "result": PredictionResult.PENDING,
                "score": UNSCORED,
                "user_id": user_id or prediction.user_id,
            }
        )
        by_day[_match_day(fresh, target)].append(fresh)

    appended: dict[date, int] = {}
    for day, predictions in sorted(by_day.items()):
        appended[day] = await store.append_predictions(day, predictions, user_id)
    logger.info(
        "predictions_recorded",
        leagues=request.leagues,
        risk_level=risk_level.value,
        generated=len(generated),
        appended=sum(appended.values()),
        days=[d.isoformat() for d in appended],
    )
    return appended
