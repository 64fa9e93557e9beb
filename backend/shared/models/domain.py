"""
Pydantic v2 domain models shared across all SafeScore services.
These are the canonical wire/internal representations, not ORM models.

Stored prediction payloads come from several generations of the client and
use different keys for the same thing (``team1`` vs ``homeTeam``, ``betType``
vs ``prediction``, ``win`` vs ``Won``). ``PredictionRecord`` accepts all of
them and always writes back the canonical camelCase shape.
"""
from __future__ import annotations

from datetime import date as date_type
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from shared.models.enums import (
    MatchPhase,
    PredictionResult,
    ReconcileStatus,
    ResultSourceName,
)

_RESULT_ALIASES: dict[str, PredictionResult] = {
    "won": PredictionResult.WON,
    "win": PredictionResult.WON,
    "lost": PredictionResult.LOST,
    "loss": PredictionResult.LOST,
    "postponed": PredictionResult.POSTPONED,
    "pending": PredictionResult.PENDING,
}

UNSCORED = "-"


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Predictions ─────────────────────────────────────────────────────────
class PredictionRecord(DomainModel):
    """One prediction as stored inside a day record."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True, extra="allow")

    id: str = ""
    match_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("matchId", "match_id"),
        serialization_alias="matchId",
    )
    home_team: str = Field(
        default="",
        validation_alias=AliasChoices("homeTeam", "team1", "home_team"),
        serialization_alias="homeTeam",
    )
    away_team: str = Field(
        default="",
        validation_alias=AliasChoices("awayTeam", "team2", "away_team"),
        serialization_alias="awayTeam",
    )
    league: str = ""
    match_time: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("matchTime", "match_time"),
        serialization_alias="matchTime",
    )
    prediction: str = Field(
        default="",
        validation_alias=AliasChoices("prediction", "betType"),
    )
    confidence: Optional[Union[float, str]] = None
    user_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("userId", "user_id"),
        serialization_alias="userId",
    )
    result: PredictionResult = PredictionResult.PENDING
    score: str = UNSCORED

    @field_validator("result", mode="before")
    @classmethod
    def _normalize_result(cls, value: Any) -> PredictionResult:
        if isinstance(value, PredictionResult):
            return value
        if not value:
            return PredictionResult.PENDING
        return _RESULT_ALIASES.get(str(value).strip().lower(), PredictionResult.PENDING)

    @field_validator("id", "home_team", "away_team", "league", "prediction", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("user_id", "match_time", mode="before")
    @classmethod
    def _coerce_optional_text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("match_id", mode="before")
    @classmethod
    def _stringify_match_id(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("score", mode="before")
    @classmethod
    def _default_score(cls, value: Any) -> str:
        return str(value) if value not in (None, "") else UNSCORED

    @property
    def is_pending(self) -> bool:
        return self.result == PredictionResult.PENDING

    def to_store(self) -> dict[str, Any]:
        """Canonical JSON shape written back to the day record."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DayRecord(DomainModel):
    """All predictions made for one calendar date."""

    date: date_type
    predictions: list[PredictionRecord] = Field(default_factory=list)

    @property
    def pending(self) -> list[PredictionRecord]:
        return [p for p in self.predictions if p.is_pending]

    @property
    def has_pending(self) -> bool:
        return any(p.is_pending for p in self.predictions)

    def for_user(self, user_id: str) -> "DayRecord":
        return DayRecord(
            date=self.date,
            predictions=[p for p in self.predictions if p.user_id == user_id],
        )


class PendingMatch(DomainModel):
    """Operator view of one still-unresolved prediction."""

    id: str
    date: date_type
    home_team: str = Field(serialization_alias="homeTeam")
    away_team: str = Field(serialization_alias="awayTeam")
    prediction: str
    league: str = ""
    user_id: Optional[str] = Field(default=None, serialization_alias="userId")


# ── Match results ───────────────────────────────────────────────────────
class ResultCandidate(DomainModel):
    """A match result as reported by one upstream source."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True, frozen=True)

    id: str
    home_team: str
    away_team: str
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    half_time_home: Optional[int] = None
    half_time_away: Optional[int] = None
    phase: MatchPhase = MatchPhase.SCHEDULED
    match_date: Optional[date_type] = None
    source: ResultSourceName

    @property
    def has_full_time_score(self) -> bool:
        return self.home_score is not None and self.away_score is not None

    @property
    def has_half_time_score(self) -> bool:
        return self.half_time_home is not None and self.half_time_away is not None


# ── Reporting ───────────────────────────────────────────────────────────
class AggregateStats(DomainModel):
    total: int = 0
    won: int = 0
    lost: int = 0
    pending: int = 0
    postponed: int = 0
    accuracy: int = 0


class ReconcileReport(DomainModel):
    """Outcome of one reconciliation run."""

    updated_count: int = 0
    status: ReconcileStatus
    changed_days: list[date_type] = Field(default_factory=list)
    failed_days: list[date_type] = Field(default_factory=list)
    unresolvable: list[str] = Field(default_factory=list)
    date_from: Optional[date_type] = None
    date_to: Optional[date_type] = None

    def to_wire(self) -> dict[str, Any]:
        return {"updatedCount": self.updated_count, "status": self.status.value}
