#!/usr/bin/env python3
"""
Create the history table (one row per date, predictions as JSONB).
From backend/: python3 run_migration_001.py
Requires SS_DATABASE_URL (or DATABASE_URL) in the environment or .env.
Safe to re-run; existing tables are left untouched.
"""
import asyncio
import sys

from sqlalchemy.exc import SQLAlchemyError

from shared.config import get_settings
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


async def main() -> int:
    setup_logging("migration")
    settings = get_settings()
    db = DatabaseManager(settings)
    await db.connect()
    try:
        await db.create_tables()
    except (SQLAlchemyError, OSError) as exc:
        logger.error("migration_001_failed", error=str(exc))
        return 1
    finally:
        await db.disconnect()
    logger.info("migration_001_applied", database=settings.database_url_safe_log)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
