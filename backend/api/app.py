"""
FastAPI application factory for the SafeScore API service.

Creates the app with:
- Reconciliation and reporting routes
- Middleware stack
- Health check endpoints
- Lifespan management (startup/shutdown)
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional, Union

from fastapi import FastAPI
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from shared.config import get_settings
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server
from shared.utils.redis_manager import RedisManager

from api.dependencies import get_db, get_redis, init_dependencies
from api.middleware import setup_middleware
from api.routes.reconcile import router as reconcile_router
from api.routes.stats import router as stats_router
from verifier.config import get_verifier_settings
from verifier.engine import ReconciliationEngine, build_engine
from verifier.errors import ConfigurationError

logger = get_logger(__name__)

_CONNECT_RETRY_ATTEMPTS = 10
_CONNECT_RETRY_BASE_DELAY_S = 2.0


async def _connect_with_retry(connect_fn, name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    for attempt in range(1, _CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except (OSError, RedisError, SQLAlchemyError) as exc:
            if attempt == _CONNECT_RETRY_ATTEMPTS:
                raise
            delay = _CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=_CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing without DB/Redis."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Connects Redis/Postgres and wires the reconciliation engine on startup;
    closes everything on shutdown.
    """
    settings = get_settings()
    setup_logging("api")
    start_metrics_server()

    redis = RedisManager(settings)
    db = DatabaseManager(settings)
    await _connect_with_retry(redis.connect, "Redis")
    await _connect_with_retry(db.connect, "Database")

    engine: Optional[ReconciliationEngine] = None
    engine_error = ""
    try:
        engine = build_engine(db, redis, settings, get_verifier_settings())
        await engine.start()
    except ConfigurationError as exc:
        # Reporting endpoints still work; POST /v1/reconcile answers 500.
        engine_error = str(exc)
        logger.error("reconcile_engine_unavailable", error=engine_error)

    init_dependencies(redis, db, engine, engine_error)
    logger.info("api_service_started", host=settings.api_host, port=settings.api_port)

    yield

    if engine is not None:
        await engine.close()
    await db.disconnect()
    await redis.disconnect()
    logger.info("api_service_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for testing without DB/Redis."""
    app = FastAPI(
        title="SafeScore API",
        description="Prediction reconciliation and accuracy reporting",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    setup_middleware(app)

    app.include_router(reconcile_router)
    app.include_router(stats_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "api"}

    @app.get("/ready", tags=["system"])
    async def readiness() -> Dict[str, Union[str, bool]]:
        """Readiness probe: pings Redis and Postgres."""
        redis = get_redis()
        db = get_db()

        redis_ok = False
        db_ok = False
        try:
            await redis.client.ping()
            redis_ok = True
        except (RedisError, OSError) as exc:
            logger.warning("readiness_redis_failed", error=str(exc))
        try:
            db_ok = await db.ping()
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("readiness_database_failed", error=str(exc))

        return {
            "status": "ok" if (redis_ok and db_ok) else "degraded",
            "redis": redis_ok,
            "database": db_ok,
        }

    return app


# For running with uvicorn directly
app = create_app()
