"""
Verifier service entrypoint.
Runs scheduled prediction reconciliation with asyncio; a failed run is logged
and retried on the next tick.
"""
from __future__ import annotations

import asyncio
import signal
import sys

from shared.config import get_settings
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server
from shared.utils.redis_manager import RedisManager

from verifier.config import get_verifier_settings
from verifier.engine import build_engine, run_reconcile_loop
from verifier.errors import ConfigurationError, ReconciliationFailed

logger = get_logger(__name__)


async def main() -> int:
    setup_logging("verifier")
    settings = get_settings()
    verifier_settings = get_verifier_settings()

    db = DatabaseManager(settings)
    redis = RedisManager(settings)

    try:
        await db.connect()
        await redis.connect()
    except Exception as e:
        logger.exception("startup_connect_failed", error=str(e))
        raise

    try:
        engine = build_engine(db, redis, settings, verifier_settings)
    except ConfigurationError as exc:
        logger.error("verifier_misconfigured", error=str(exc))
        await redis.disconnect()
        await db.disconnect()
        return 2
    await engine.start()

    exit_code = 0
    if verifier_settings.run_once:
        try:
            report = await engine.reconcile()
            logger.info("verifier_run_once_done", **report.to_wire())
        except ReconciliationFailed as exc:
            logger.error("verifier_run_once_failed", error=str(exc))
            exit_code = 1
    else:
        start_metrics_server(verifier_settings.metrics_port)
        loop_task = asyncio.create_task(
            run_reconcile_loop(engine, verifier_settings.run_interval_s, verifier_settings.jitter_factor)
        )
        shutdown = asyncio.Event()

        def on_signal() -> None:
            shutdown.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                asyncio.get_running_loop().add_signal_handler(sig, on_signal)
            except NotImplementedError:
                pass

        logger.info("verifier_started", interval_s=verifier_settings.run_interval_s)
        await shutdown.wait()

        loop_task.cancel()
        try:
            await loop_task
        except asyncio.CancelledError:
            pass

    await engine.close()
    await redis.disconnect()
    await db.disconnect()
    logger.info("verifier_stopped")
    return exit_code


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
