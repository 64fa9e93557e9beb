"""
Football-Data.org (football-data.org) result source.
Authoritative ground truth: one GET /matches?dateFrom&dateTo per run.
Uses v4 API with X-Auth-Token. Free tier: 10 requests/min.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

import httpx

from shared.models.domain import ResultCandidate
from shared.models.enums import MatchPhase, ResultSourceName
from shared.utils.http_client import SourceHTTPClient
from shared.utils.logging import get_logger

from verifier.errors import (
    ConfigurationError,
    ResultSourcePayloadError,
    ResultSourceRejected,
    ResultSourceUnavailable,
)
from verifier.sources.base import ResultSource

logger = get_logger(__name__)

FOOTBALL_DATA_BASE = "https://api.football-data.org/v4"

FOOTBALL_DATA_STATUS_TO_PHASE: dict[str, MatchPhase] = {
    "SCHEDULED": MatchPhase.SCHEDULED,
    "TIMED": MatchPhase.SCHEDULED,
    "LIVE": MatchPhase.LIVE,
    "IN_PLAY": MatchPhase.LIVE,
    "PAUSED": MatchPhase.LIVE,
    "FINISHED": MatchPhase.FINISHED,
    "AWARDED": MatchPhase.FINISHED,
    "POSTPONED": MatchPhase.POSTPONED,
    "SUSPENDED": MatchPhase.SUSPENDED,
    "CANCELLED": MatchPhase.CANCELLED,
}


def _map_status(status: str) -> MatchPhase:
    """Map football-data.org status to MatchPhase."""
    return FOOTBALL_DATA_STATUS_TO_PHASE.get((status or "").strip().upper(), MatchPhase.SCHEDULED)


def _int_or_none(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _team_name(team: dict[str, Any]) -> str:
    return team.get("name") or team.get("shortName") or ""


def _parse_match(data: dict[str, Any]) -> Optional[ResultCandidate]:
    """Build a ResultCandidate from one football-data match object."""
    match_id = data.get("id")
    home = data.get("homeTeam") or {}
    away = data.get("awayTeam") or {}
    if match_id is None or not _team_name(home) or not _team_name(away):
        return None
    score = data.get("score") or {}
    ft = score.get("fullTime") or {}
    ht = score.get("halfTime") or {}
    match_date: Optional[date] = None
    utc_str = data.get("utcDate") or ""
    if utc_str:
        try:
            match_date = datetime.fromisoformat(utc_str.replace("Z", "+00:00")).date()
        except ValueError:
            logger.debug("football_data_bad_utc_date", match_id=match_id, utc_date=utc_str)
    return ResultCandidate(
        id=str(match_id),
        home_team=_team_name(home),
        away_team=_team_name(away),
        home_score=_int_or_none(ft.get("home")),
        away_score=_int_or_none(ft.get("away")),
        half_time_home=_int_or_none(ht.get("home")),
        half_time_away=_int_or_none(ht.get("away")),
        phase=_map_status(data.get("status", "")),
        match_date=match_date,
        source=ResultSourceName.FOOTBALL_DATA,
    )


class FootballDataSource(ResultSource):
    """Football-Data.org v4 API (soccer only)."""

    def __init__(
        self,
        api_key: str,
        base_url: str = FOOTBALL_DATA_BASE,
        timeout_s: float = 15.0,
        max_rate_limit_retries: int = 2,
        max_retry_after_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("football_data api key is not configured (SS_FOOTBALL_DATA_API_KEY)")
        self._base_url = base_url.rstrip("/")
        self._http = SourceHTTPClient(
            source_name=self.source_name,
            base_url=self._base_url,
            headers={"X-Auth-Token": api_key},
            timeout_s=timeout_s,
            max_rate_limit_retries=max_rate_limit_retries,
            max_retry_after_s=max_retry_after_s,
            transport=transport,
        )

    @property
    def source_name(self) -> str:
        return ResultSourceName.FOOTBALL_DATA.value

    @property
    def base_url(self) -> str:
        return self._base_url

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    async def fetch_results(self, date_from: date, date_to: date) -> list[ResultCandidate]:
        if date_from is None or date_to is None:
            raise ValueError("date_from and date_to are both required")
        if date_from > date_to:
            raise ValueError(f"date_from {date_from} is after date_to {date_to}")

        params = {"dateFrom": date_from.isoformat(), "dateTo": date_to.isoformat()}
        try:
            resp = await self._http.get("/matches", params=params)
        except httpx.HTTPError as exc:
            raise ResultSourceUnavailable(self.source_name, str(exc) or type(exc).__name__) from exc

        if not resp.is_success:
            try:
                body = resp.json()
            except ValueError:
                body = None
            message = str(body.get("message", "")) if isinstance(body, dict) else ""
            raise ResultSourceRejected(self.source_name, resp.status_code, message)

        try:
            data = resp.json()
        except ValueError as exc:
            raise ResultSourcePayloadError(self.source_name, "response body is not JSON") from exc
        if not isinstance(data, dict):
            raise ResultSourcePayloadError(self.source_name, "unexpected response shape")
        if data.get("errorCode") or ("message" in data and "matches" not in data):
            raise ResultSourcePayloadError(
                self.source_name,
                f"error payload {data.get('errorCode', '')} {data.get('message', '')}".strip(),
            )
        matches = data.get("matches")
        if not isinstance(matches, list):
            raise ResultSourcePayloadError(self.source_name, "response has no matches list")

        candidates: list[ResultCandidate] = []
        for item in matches:
            try:
                candidate = _parse_match(item) if isinstance(item, dict) else None
            except (AttributeError, TypeError, ValueError) as exc:
                logger.warning("football_data_match_skipped", match_id=item.get("id"), error=str(exc))
                continue
            if candidate is not None:
                candidates.append(candidate)
        logger.info(
            "football_data_results_fetched",
            date_from=params["dateFrom"],
            date_to=params["dateTo"],
            matches=len(matches),
            candidates=len(candidates),
        )
        return candidates
