"""
Outcome resolution: turn a matched result into a prediction transition.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from shared.models.domain import PredictionRecord, ResultCandidate
from shared.models.enums import MatchPhase, PredictionResult
from shared.utils.logging import get_logger

from verifier.markets import FinalScore, MarketGrade, grade_market

logger = get_logger(__name__)

_TRACKED_FIELDS = ("result", "score", "match_id")


@dataclass(frozen=True)
class Resolution:
    prediction: PredictionRecord
    changed: bool = False
    unresolvable_reason: Optional[str] = None

    @property
    def settled(self) -> bool:
        return self.prediction.result.is_settled


def format_score(home: int, away: int) -> str:
    return f"{home}-{away}"


def resolve(prediction: PredictionRecord, candidate: Optional[ResultCandidate]) -> Resolution:
    """
    Apply a matched result to a Pending prediction.

    Settled and postponed predictions are returned untouched. A stored
    match id is never replaced.
    """
    if candidate is None or not prediction.is_pending:
        return Resolution(prediction=prediction)

    updates: dict[str, Any] = {}
    reason: Optional[str] = None
    if not prediction.match_id:
        updates["match_id"] = candidate.id

    if candidate.phase.is_void:
        updates["result"] = PredictionResult.POSTPONED
    elif candidate.phase == MatchPhase.FINISHED and candidate.has_full_time_score:
        grade = grade_market(
            prediction.prediction,
            FinalScore(
                home=candidate.home_score,
                away=candidate.away_score,
                half_time_home=candidate.half_time_home,
                half_time_away=candidate.half_time_away,
            ),
        )
        if grade == MarketGrade.WON:
            updates["result"] = PredictionResult.WON
        elif grade == MarketGrade.LOST:
            updates["result"] = PredictionResult.LOST
        elif grade in (MarketGrade.PUSH, MarketGrade.UNKNOWN):
            reason = grade.value
            logger.warning(
                "prediction_unresolvable",
                prediction_id=prediction.id,
                market=prediction.prediction,
                reason=reason,
                match_id=candidate.id,
                score=format_score(candidate.home_score, candidate.away_score),
            )
        if grade in (MarketGrade.WON, MarketGrade.LOST):
            updates["score"] = format_score(candidate.home_score, candidate.away_score)

    if not updates:
        return Resolution(prediction=prediction, unresolvable_reason=reason)

    resolved = prediction.model_copy(update=updates)
    changed = any(getattr(resolved, f) != getattr(prediction, f) for f in _TRACKED_FIELDS)
    return Resolution(prediction=resolved, changed=changed, unresolvable_reason=reason)
