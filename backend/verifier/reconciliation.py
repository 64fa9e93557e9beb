"""
Operator-visible reconciliation state in Redis.
Flags predictions that could not be graded and keeps the last run summary.
Redis is best effort here: failures are logged and never reach the run.
"""
from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any, Optional

from redis.exceptions import RedisError

from shared.models.domain import PredictionRecord, ReconcileReport
from shared.utils.logging import get_logger
from shared.utils.redis_manager import LAST_RUN_KEY, RedisManager

from verifier.config import VerifierSettings, get_verifier_settings

logger = get_logger(__name__)


async def flag_unresolvable(
    redis: Optional[RedisManager],
    prediction: PredictionRecord,
    day: date,
    reason: str,
    settings: Optional[VerifierSettings] = None,
) -> None:
    """Store an ungradable prediction for manual review."""
    logger.warning(
        "verification_unresolvable_flagged",
        prediction_id=prediction.id,
        date=day.isoformat(),
        market=prediction.prediction,
        reason=reason,
    )
    if redis is None:
        return
    settings = settings or get_verifier_settings()
    payload = json.dumps({
        "prediction_id": prediction.id,
        "date": day.isoformat(),
        "home_team": prediction.home_team,
        "away_team": prediction.away_team,
        "market": prediction.prediction,
        "match_id": prediction.match_id,
        "reason": reason,
        "at": datetime.now(timezone.utc).isoformat(),
    })
    try:
        await redis.flag_unresolvable(
            prediction.id or f"{day.isoformat()}:{prediction.home_team}",
            payload,
            settings.unresolvable_ttl_s,
        )
    except RedisError as exc:
        logger.warning("verification_flag_store_failed", prediction_id=prediction.id, error=str(exc))


async def set_last_run(
    redis: Optional[RedisManager],
    report: ReconcileReport,
    settings: Optional[VerifierSettings] = None,
) -> None:
    if redis is None:
        return
    settings = settings or get_verifier_settings()
    payload = report.model_dump(mode="json")
    payload["at"] = datetime.now(timezone.utc).isoformat()
    try:
        await redis.set_snapshot(LAST_RUN_KEY, json.dumps(payload), ttl_s=settings.last_run_ttl_s)
    except RedisError as exc:
        logger.warning("verification_last_run_store_failed", error=str(exc))


async def get_last_run(redis: Optional[RedisManager]) -> Optional[dict[str, Any]]:
    if redis is None:
        return None
    try:
        raw = await redis.get_snapshot(LAST_RUN_KEY)
    except RedisError as exc:
        logger.warning("verification_last_run_read_failed", error=str(exc))
        return None
    return json.loads(raw) if raw else None


async def list_flagged(redis: Optional[RedisManager]) -> list[str]:
    """Prediction ids currently flagged for manual review."""
    if redis is None:
        return []
    try:
        return await redis.list_unresolvable()
    except RedisError as exc:
        logger.warning("verification_flags_read_failed", error=str(exc))
        return []
