"""
Bet-market grading against a final score.

Market strings are the ones the prediction generator emits
("Home Team to Win", "Over 2.5 Goals", "Handicap (-1.5) Home Team", ...).
Comparison is case- and whitespace-insensitive. Goal lines and handicaps
accept any value, so "Over 3.5 Goals" grades without a table entry.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class MarketGrade(str, Enum):
    WON = "won"
    LOST = "lost"
    AWAITING_HALF_TIME = "awaiting_half_time"
    PUSH = "push"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FinalScore:
    home: int
    away: int
    half_time_home: Optional[int] = None
    half_time_away: Optional[int] = None

    @property
    def total(self) -> int:
        return self.home + self.away

    @property
    def has_half_time(self) -> bool:
        return self.half_time_home is not None and self.half_time_away is not None

    @property
    def second_half_home(self) -> int:
        return self.home - (self.half_time_home or 0)

    @property
    def second_half_away(self) -> int:
        return self.away - (self.half_time_away or 0)

    @property
    def first_half_total(self) -> int:
        return (self.half_time_home or 0) + (self.half_time_away or 0)

    @property
    def second_half_total(self) -> int:
        return self.second_half_home + self.second_half_away


# Markets graded on the full-time score only.
_FULL_TIME: dict[str, Callable[[FinalScore], bool]] = {
    "home team to win": lambda s: s.home > s.away,
    "away team to win": lambda s: s.away > s.home,
    "draw": lambda s: s.home == s.away,
    "home team to win or draw": lambda s: s.home >= s.away,
    "away team to win or draw": lambda s: s.away >= s.home,
    "both teams to score: yes": lambda s: s.home > 0 and s.away > 0,
    "both teams to score: no": lambda s: s.home == 0 or s.away == 0,
    "team to score: home": lambda s: s.home > 0,
    "team to score: away": lambda s: s.away > 0,
}

# Markets that need the half-time score.
_HALF_TIME: dict[str, Callable[[FinalScore], bool]] = {
    "highest scoring half: 1st": lambda s: s.first_half_total > s.second_half_total,
    "highest scoring half: 2nd": lambda s: s.second_half_total > s.first_half_total,
    "home team to score in 1st half: yes": lambda s: (s.half_time_home or 0) > 0,
    "away team to score in 2nd half: yes": lambda s: s.second_half_away > 0,
}

_TOTALS_RE = re.compile(r"^(over|under) (\d+(?:\.\d+)?) goals?$")
_HANDICAP_RE = re.compile(r"^handicap \(([+-]?\d+(?:\.\d+)?)\) (home|away) team$")


def _canonical_market(market: str) -> str:
    return " ".join((market or "").lower().split())


def _line_grade(diff: float) -> MarketGrade:
    if diff > 0:
        return MarketGrade.WON
    if diff < 0:
        return MarketGrade.LOST
    return MarketGrade.PUSH


def is_known_market(market: str) -> bool:
    key = _canonical_market(market)
    return (
        key in _FULL_TIME
        or key in _HALF_TIME
        or bool(_TOTALS_RE.match(key))
        or bool(_HANDICAP_RE.match(key))
    )


def grade_market(market: str, score: FinalScore) -> MarketGrade:
    """Grade one market string against a final score."""
    key = _canonical_market(market)

    check = _FULL_TIME.get(key)
    if check is not None:
        return MarketGrade.WON if check(score) else MarketGrade.LOST

    check = _HALF_TIME.get(key)
    if check is not None:
        if not score.has_half_time:
            return MarketGrade.AWAITING_HALF_TIME
        return MarketGrade.WON if check(score) else MarketGrade.LOST

    m = _TOTALS_RE.match(key)
    if m:
        line = float(m.group(2))
        diff = score.total - line if m.group(1) == "over" else line - score.total
        return _line_grade(diff)

    m = _HANDICAP_RE.match(key)
    if m:
        handicap = float(m.group(1))
        if m.group(2) == "home":
            return _line_grade(score.home + handicap - score.away)
        return _line_grade(score.away + handicap - score.home)

    return MarketGrade.UNKNOWN
