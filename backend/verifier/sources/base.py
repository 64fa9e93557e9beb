"""
Base interfaces for match-result sources.
Every source normalizes its payload to ResultCandidate for matching.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

from shared.models.domain import ResultCandidate


class _SourceLifecycle(ABC):
    @property
    @abstractmethod
    def source_name(self) -> str:
        pass

    @property
    @abstractmethod
    def base_url(self) -> str:
        """Base URL for rate limit domain."""
        pass

    async def start(self) -> None:
        """Open network resources. Sources that hold none need not override."""

    async def close(self) -> None:
        """Release network resources."""


class ResultSource(_SourceLifecycle):
    """Authoritative, date-range queryable result API."""

    @abstractmethod
    async def fetch_results(self, date_from: date, date_to: date) -> list[ResultCandidate]:
        """
        Return every match the source knows about in [date_from, date_to].

        Raises ResultSourceError on any failure; never returns a partial list.
        """
        pass


class FallbackSource(_SourceLifecycle):
    """Best-effort single-day result source."""

    @abstractmethod
    async def fetch_day(self, day: date) -> list[ResultCandidate]:
        """
        Return the matches listed for one day.

        Raises FallbackSourceError on failure. An empty list means "nothing found".
        """
        pass
