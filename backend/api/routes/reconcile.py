"""
Reconciliation REST endpoints.

POST /v1/reconcile : run one reconciliation pass now.
GET  /v1/status    : last run summary and fallback circuit state.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from shared.models.enums import ReconcileStatus
from shared.utils.logging import get_logger
from shared.utils.redis_manager import RedisManager

from api.dependencies import get_engine, get_redis
from verifier.engine import ReconciliationEngine
from verifier.errors import ReconciliationFailed, ResultSourceError
from verifier.reconciliation import get_last_run, list_flagged

logger = get_logger(__name__)
router = APIRouter(prefix="/v1", tags=["reconcile"])


@router.post("/reconcile", response_model=None)
async def post_reconcile(
    engine: ReconciliationEngine = Depends(get_engine),
) -> dict[str, Any] | JSONResponse:
    """
    Resolve every pending prediction the result sources can settle.

    Returns ``{"updatedCount", "status"}``. An upstream failure aborts the
    run before any write and answers 502.
    """
    try:
        report = await engine.reconcile()
    except ReconciliationFailed as exc:
        status_code = 502 if isinstance(exc.cause, ResultSourceError) else 500
        return JSONResponse(
            status_code=status_code,
            content={
                "updatedCount": 0,
                "status": ReconcileStatus.FAILED.value,
                "error": str(exc),
            },
        )
    return report.to_wire()


@router.get("/status")
async def get_status(
    engine: ReconciliationEngine = Depends(get_engine),
    redis: RedisManager = Depends(get_redis),
) -> dict[str, Any]:
    return {
        "last_run": await get_last_run(redis),
        "fallback": engine.fallback_circuit.stats,
        "unresolvable": await list_flagged(redis),
    }
