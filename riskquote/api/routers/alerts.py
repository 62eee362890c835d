"""
Risk Alert API Endpoints.

GET  /api/v1/alerts/{user_id}                      — list alerts
GET  /api/v1/alerts/{user_id}/unacknowledged-count — outstanding alert count
POST /api/v1/alerts/{user_id}/acknowledge          — acknowledge all
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from riskquote.alerting.schemas import AlertListResponse
from riskquote.api.deps import get_store
from riskquote.db.store import RecordStore

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


class UnacknowledgedCount(BaseModel):
    user_id: str
    unacknowledged: int


class AcknowledgeResponse(BaseModel):
    user_id: str
    acknowledged: int


@router.get("/{user_id}", response_model=AlertListResponse)
async def list_alerts(
    user_id: str,
    unacknowledged_only: bool = Query(default=False),
    store: RecordStore = Depends(get_store),
):
    alerts = await store.list_alerts(user_id, unacknowledged_only=unacknowledged_only)
    return AlertListResponse(
        alerts=alerts,
        total=len(alerts),
        unacknowledged=await store.unacknowledged_count(user_id),
    )


@router.get("/{user_id}/unacknowledged-count", response_model=UnacknowledgedCount)
async def unacknowledged_count(
    user_id: str,
    store: RecordStore = Depends(get_store),
):
    return UnacknowledgedCount(
        user_id=user_id,
        unacknowledged=await store.unacknowledged_count(user_id),
    )


@router.post("/{user_id}/acknowledge", response_model=AcknowledgeResponse)
async def acknowledge_all(
    user_id: str,
    store: RecordStore = Depends(get_store),
):
    """Mark every outstanding alert for the user acknowledged in one step."""
    count = await store.acknowledge_all(user_id)
    return AcknowledgeResponse(user_id=user_id, acknowledged=count)
