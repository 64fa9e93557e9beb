"""
Verifier service configuration.
Uses SS_ prefix and same Redis/DB env as other services; adds reconciliation limits.
"""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class VerifierSettings(BaseSettings):
    """Verifier-specific settings; use get_settings() for Redis/DB and source keys."""

    model_config = SettingsConfigDict(
        env_prefix="SS_VERIFIER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Window
    lookback_days: int = Field(default=60, description="Oldest pending day considered, counted back from today")
    match_date_tolerance_days: int = Field(
        default=3, description="Bulk results dated this many days before a prediction day still qualify"
    )

    # Timeouts and retries
    fetch_timeout_s: float = Field(default=15.0, description="HTTP timeout per request")
    max_rate_limit_retries: int = Field(default=2, description="Retries after HTTP 429 before giving up")
    max_retry_after_s: float = Field(default=30.0, description="Upper bound on a honoured Retry-After")

    # Outbound rate limiting
    per_domain_rpm: int = Field(default=30, description="Max requests per minute per domain (token bucket)")
    per_domain_burst: int = Field(default=5, description="Burst size per domain")

    # Fallback scraper
    fallback_enabled: bool = Field(default=True, description="Scrape the BBC scores page when the API misses")
    bbc_base_url: str = Field(default="https://www.bbc.com", description="Scores page host")

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=5, description="Failures before opening circuit")
    circuit_recovery_s: float = Field(default=120.0, description="Seconds before half-open")

    # Redis key TTLs
    unresolvable_ttl_s: int = Field(default=86400 * 7, description="TTL for verification:unresolvable:{id}")
    last_run_ttl_s: int = Field(default=86400 * 2, description="TTL for verification:last_run")

    # Periodic runner
    run_interval_s: float = Field(default=3600.0, description="Seconds between scheduled runs")
    jitter_factor: float = Field(default=0.1, description="Jitter as fraction of interval (0.1 = ±10%)")
    run_once: bool = Field(default=False, description="Run a single reconciliation and exit")
    metrics_port: int = Field(default=9091, description="Port for metrics HTTP server")


def get_verifier_settings() -> VerifierSettings:
    """Load verifier settings. Call get_settings() before run if using shared Redis/DB."""
    return VerifierSettings()
