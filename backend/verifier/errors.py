"""
Error taxonomy for reconciliation.

Sources and the store raise these; only the engine decides whether an error
aborts the run or degrades a single day.
"""
from __future__ import annotations

from typing import Optional


class ReconcilerError(Exception):
    """Base for every error raised by the reconciliation stack."""


class ConfigurationError(ReconcilerError):
    """A required setting (such as an API key) is missing or invalid."""


# ── Authoritative source ────────────────────────────────────────────────
class ResultSourceError(ReconcilerError):
    """The authoritative result source could not produce a result set."""

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(f"{source}: {message}")


class ResultSourceUnavailable(ResultSourceError):
    """Network failure or timeout talking to the source."""


class ResultSourceRejected(ResultSourceError):
    """The source answered with a non-2xx status (auth and quota included)."""

    def __init__(self, source: str, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        super().__init__(source, f"HTTP {status_code} {message}".strip())


class ResultSourcePayloadError(ResultSourceError):
    """A 2xx response carrying an error payload or unparseable body."""


# ── Fallback source ─────────────────────────────────────────────────────
class FallbackSourceError(ReconcilerError):
    """The fallback scraper failed for one day."""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None) -> None:
        self.source = source
        self.status_code = status_code
        super().__init__(f"{source}: {message}")


# ── Persistence / run ───────────────────────────────────────────────────
class PersistenceError(ReconcilerError):
    """A day record could not be written back."""


class ReconciliationFailed(ReconcilerError):
    """The run was aborted before any write."""

    def __init__(self, cause: ReconcilerError) -> None:
        self.cause = cause
        super().__init__(str(cause))
