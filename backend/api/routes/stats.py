"""
Reporting REST endpoints.

GET /v1/stats[?user=<id>]  : accuracy over all, or one user's, predictions.
GET /v1/history?user=<id>  : one user's day records with their accuracy.
GET /v1/pending            : predictions still waiting for a result.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from shared.stats import accuracy_for_days, list_pending

from api.dependencies import get_store
from verifier.store import DayStore

router = APIRouter(prefix="/v1", tags=["stats"])


@router.get("/stats")
async def get_stats(
    user: Optional[str] = Query(None, min_length=1, description="Restrict to one user's predictions"),
    store: DayStore = Depends(get_store),
) -> dict[str, Any]:
    if user:
        days = await store.get_days_by_user(user)
        return accuracy_for_days(days, user_id=user).model_dump()
    days = await store.list_days()
    return accuracy_for_days(days).model_dump()


@router.get("/history")
async def get_history(
    user: str = Query(..., min_length=1),
    store: DayStore = Depends(get_store),
) -> dict[str, Any]:
    days = await store.get_days_by_user(user)
    return {
        "user": user,
        "stats": accuracy_for_days(days, user_id=user).model_dump(),
        "history": [
            {"date": d.date.isoformat(), "predictions": [p.to_store() for p in d.predictions]}
            for d in sorted(days, key=lambda d: d.date, reverse=True)
        ],
    }


@router.get("/pending")
async def get_pending(store: DayStore = Depends(get_store)) -> dict[str, Any]:
    matches = list_pending(await store.list_days())
    return {
        "count": len(matches),
        "matches": [m.model_dump(mode="json", by_alias=True) for m in matches],
    }
