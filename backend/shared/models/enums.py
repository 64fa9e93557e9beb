"""Domain enumerations for the SafeScore platform."""
from __future__ import annotations

from enum import Enum


class PredictionResult(str, Enum):
    PENDING = "Pending"
    WON = "Won"
    LOST = "Lost"
    POSTPONED = "Postponed"

    @property
    def is_settled(self) -> bool:
        return self in (PredictionResult.WON, PredictionResult.LOST)


class MatchPhase(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    SUSPENDED = "suspended"
    FINISHED = "finished"
    POSTPONED = "postponed"
    CANCELLED = "cancelled"

    @property
    def is_live(self) -> bool:
        return self == MatchPhase.LIVE

    @property
    def is_void(self) -> bool:
        """The match will not produce a result on its scheduled date."""
        return self in (MatchPhase.POSTPONED, MatchPhase.CANCELLED)

    @property
    def is_terminal(self) -> bool:
        return self == MatchPhase.FINISHED or self.is_void


class ResultSourceName(str, Enum):
    FOOTBALL_DATA = "football_data"
    BBC = "bbc"


class ReconcileStatus(str, Enum):
    SYNCHRONIZED = "synchronized"
    UP_TO_DATE = "up_to_date"
    FAILED = "failed"


class RiskLevel(str, Enum):
    VERY_SAFE = "very safe"
    SAFE = "safe"
    MEDIUM_SAFE = "medium safe"
