"""
BBC Sport scores page fallback source.
HTML scraping with BeautifulSoup; used only for days the authoritative API
could not resolve, at most once per day per run.
"""
from __future__ import annotations

import hashlib
import re
from datetime import date
from typing import Optional

import httpx
from bs4 import BeautifulSoup, Tag

from shared.models.domain import ResultCandidate
from shared.models.enums import MatchPhase, ResultSourceName
from shared.utils.http_client import SourceHTTPClient
from shared.utils.logging import get_logger

from verifier.errors import FallbackSourceError
from verifier.rate_limiter import DomainRateLimiter
from verifier.sources.base import FallbackSource

logger = get_logger(__name__)

BBC_BASE = "https://www.bbc.com"
SCORES_PATH = "/sport/football/scores-fixtures/{day}"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# Class names are generated and change between deploys; match on fragments.
CONTAINER_SELECTOR = 'div[class*="GridContainer"], li[class*="Match-"], div[class*="Match-"]'
HOME_TEAM_SELECTOR = 'div[class*="TeamHome"] span[class*="DesktopValue"], [data-testid="home-team-name"]'
AWAY_TEAM_SELECTOR = 'div[class*="TeamAway"] span[class*="DesktopValue"], [data-testid="away-team-name"]'
HOME_SCORE_SELECTOR = 'div[class*="HomeScore"], [data-testid="home-score"]'
AWAY_SCORE_SELECTOR = 'div[class*="AwayScore"], [data-testid="away-score"]'
STATUS_SELECTOR = 'div[class*="StyledPeriod"], div[class*="Status"], div[class*="MatchProgress"]'

_VERSUS_RE = re.compile(
    r"^(?P<home>.+?)\s+versus\s+(?P<away>.+?)\s+(?:FT\s*)?(?P<hs>\d+)\s*-\s*(?P<as>\d+)\b"
)
_INT_RE = re.compile(r"^\s*(\d+)")


def synthetic_match_id(home: str, away: str, day: date) -> str:
    digest = hashlib.sha1(f"{home}|{away}|{day.isoformat()}".encode("utf-8")).hexdigest()
    return f"bbc-{digest[:12]}"


def _first_line(text: str) -> str:
    return text.strip().split("\n")[0].strip()


def _select_text(el: Tag, selector: str) -> str:
    found = el.select_one(selector)
    return found.get_text(strip=False) if found else ""


def _parse_score(text: str) -> Optional[int]:
    m = _INT_RE.match(text or "")
    return int(m.group(1)) if m else None


def _phase_from(status_text: str, home_score: Optional[int], away_score: Optional[int]) -> MatchPhase:
    status = status_text.upper()
    if home_score is not None and away_score is not None:
        if "LIVE" in status or "MINS" in status or "'" in status:
            return MatchPhase.LIVE
        return MatchPhase.FINISHED
    if "POSTP" in status:
        return MatchPhase.POSTPONED
    if "CANC" in status or "ABAN" in status:
        return MatchPhase.CANCELLED
    return MatchPhase.SCHEDULED


def _parse_container(el: Tag, day: date) -> Optional[ResultCandidate]:
    if el.select_one('div[class*="TeamHome"], [data-testid="home-team-name"]') is None:
        return None

    home = _first_line(_select_text(el, HOME_TEAM_SELECTOR))
    away = _first_line(_select_text(el, AWAY_TEAM_SELECTOR))
    if not home:
        home = _first_line(_select_text(el, 'div[class*="TeamHome"]'))
    if not away:
        away = _first_line(_select_text(el, 'div[class*="TeamAway"]'))
    if not home or not away:
        return None

    home_score = _parse_score(_select_text(el, HOME_SCORE_SELECTOR))
    away_score = _parse_score(_select_text(el, AWAY_SCORE_SELECTOR))
    status_text = " ".join(s.get_text(" ", strip=True) for s in el.select(STATUS_SELECTOR))

    return ResultCandidate(
        id=synthetic_match_id(home, away, day),
        home_team=home,
        away_team=away,
        home_score=home_score,
        away_score=away_score,
        phase=_phase_from(status_text, home_score, away_score),
        match_date=day,
        source=ResultSourceName.BBC,
    )


def _parse_versus_text(soup: BeautifulSoup, day: date) -> list[ResultCandidate]:
    """Text fallback for markup the selectors no longer recognise."""
    results: list[ResultCandidate] = []
    for el in soup.find_all(["a", "li", "div"]):
        text = el.get_text(" ", strip=True)
        if " versus " not in text:
            continue
        # Innermost element only; parents repeat the same text.
        if any(" versus " in child.get_text(" ", strip=True) for child in el.find_all(["a", "li", "div"])):
            continue
        m = _VERSUS_RE.match(text)
        if not m:
            continue
        home, away = m.group("home").strip(), m.group("away").strip()
        results.append(
            ResultCandidate(
                id=synthetic_match_id(home, away, day),
                home_team=home,
                away_team=away,
                home_score=int(m.group("hs")),
                away_score=int(m.group("as")),
                phase=MatchPhase.FINISHED,
                match_date=day,
                source=ResultSourceName.BBC,
            )
        )
    return results


def parse_scores_page(html: str, day: date) -> list[ResultCandidate]:
    """Parse a BBC scores-fixtures page into result candidates."""
    soup = BeautifulSoup(html, "html.parser")
    results: list[ResultCandidate] = []
    seen: set[tuple[str, str]] = set()
    for el in soup.select(CONTAINER_SELECTOR):
        candidate = _parse_container(el, day)
        if candidate is None:
            continue
        key = (candidate.home_team, candidate.away_team)
        if key in seen:
            continue
        seen.add(key)
        results.append(candidate)
    if not results:
        results = _parse_versus_text(soup, day)
    return results


class BBCScoresSource(FallbackSource):
    """BBC Sport football scores-fixtures page, one request per day."""

    def __init__(
        self,
        base_url: str = BBC_BASE,
        rate_limiter: Optional[DomainRateLimiter] = None,
        timeout_s: float = 15.0,
        max_rate_limit_retries: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._rate_limiter = rate_limiter
        self._http = SourceHTTPClient(
            source_name=self.source_name,
            base_url=self._base_url,
            headers={"User-Agent": USER_AGENT, "Accept": "text/html"},
            timeout_s=timeout_s,
            max_rate_limit_retries=max_rate_limit_retries,
            transport=transport,
        )

    @property
    def source_name(self) -> str:
        return ResultSourceName.BBC.value

    @property
    def base_url(self) -> str:
        return self._base_url

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    async def fetch_day(self, day: date) -> list[ResultCandidate]:
        path = SCORES_PATH.format(day=day.isoformat())
        if self._rate_limiter is not None:
            if not await self._rate_limiter.wait_for_slot(self._base_url + path):
                raise FallbackSourceError(self.source_name, "rate limit slot unavailable")
        try:
            resp = await self._http.get(path)
        except httpx.HTTPError as exc:
            raise FallbackSourceError(self.source_name, str(exc) or type(exc).__name__) from exc
        if resp.status_code != 200:
            raise FallbackSourceError(
                self.source_name, f"HTTP {resp.status_code} for {path}", status_code=resp.status_code
            )
        try:
            results = parse_scores_page(resp.text, day)
        except Exception as exc:
            raise FallbackSourceError(self.source_name, f"unparseable scores page: {exc}") from exc
        logger.info("bbc_scores_parsed", date=day.isoformat(), matches=len(results))
        return results
