"""
Dependency injection for the API service.
Provides the day store, the reconciliation engine and Redis to route handlers.
"""
from __future__ import annotations

from typing import Optional

from shared.utils.database import DatabaseManager
from shared.utils.redis_manager import RedisManager

from verifier.engine import ReconciliationEngine
from verifier.errors import ConfigurationError
from verifier.store import DayStore, SqlDayStore

# Module-level singletons, initialized at startup
_redis: RedisManager | None = None
_db: DatabaseManager | None = None
_store: DayStore | None = None
_engine: ReconciliationEngine | None = None
_engine_error: str = ""


def init_dependencies(
    redis: RedisManager,
    db: DatabaseManager,
    engine: Optional[ReconciliationEngine] = None,
    engine_error: str = "",
) -> None:
    """Initialize module-level singletons. Called once at startup."""
    global _redis, _db, _store, _engine, _engine_error
    _redis = redis
    _db = db
    _store = SqlDayStore(db)
    _engine = engine
    _engine_error = engine_error


def get_redis() -> RedisManager:
    """FastAPI dependency: returns the shared RedisManager."""
    if _redis is None:
        raise RuntimeError("RedisManager not initialized; call init_dependencies first")
    return _redis


def get_db() -> DatabaseManager:
    """FastAPI dependency: returns the shared DatabaseManager."""
    if _db is None:
        raise RuntimeError("DatabaseManager not initialized; call init_dependencies first")
    return _db


def get_store() -> DayStore:
    """FastAPI dependency: returns the day-record store."""
    if _store is None:
        raise RuntimeError("DayStore not initialized; call init_dependencies first")
    return _store


def get_engine() -> ReconciliationEngine:
    """FastAPI dependency: returns the reconciliation engine, if it could be configured."""
    if _engine is None:
        raise ConfigurationError(_engine_error or "reconciliation engine is not configured")
    return _engine
