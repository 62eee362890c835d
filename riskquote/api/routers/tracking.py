"""
Health-Tracking Ingestion Endpoint.

POST /api/v1/tracking/{user_id} — wearable or manual entries for a user.
The 30-day summary replaces the one on the stored profile and a
health_tracking recompute is scheduled.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from riskquote.api.deps import get_pipeline, get_store
from riskquote.db.store import RecordStore
from riskquote.pipeline.recompute import RecomputePipeline
from riskquote.schemas.events import ChangedEntity, ChangeEvent
from riskquote.schemas.profile import HealthTrackingSummary
from riskquote.services.health_tracking import (
    TrackingEntry,
    TrackingTrends,
    attach_tracking,
    tracking_trends,
)

router = APIRouter(prefix="/api/v1/tracking", tags=["tracking"])


class TrackingUpload(BaseModel):
    entries: list[TrackingEntry] = Field(min_length=1)
    days: int = Field(default=30, ge=1, le=365)


class TrackingAccepted(BaseModel):
    user_id: str
    summary: Optional[HealthTrackingSummary] = None
    trends: Optional[TrackingTrends] = None
    coalesced: bool


@router.post("/{user_id}", status_code=202, response_model=TrackingAccepted)
async def upload_tracking(
    user_id: str,
    upload: TrackingUpload,
    store: RecordStore = Depends(get_store),
    pipeline: RecomputePipeline = Depends(get_pipeline),
):
    snapshot = await store.get_snapshot(user_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"No profile for user {user_id}")

    updated = attach_tracking(snapshot, upload.entries, days=upload.days)
    await store.put_snapshot(updated)

    coalesced = pipeline.is_busy(user_id)
    pipeline.submit(ChangeEvent(user_id=user_id, changed_entity=ChangedEntity.HEALTH_TRACKING))
    return TrackingAccepted(
        user_id=user_id,
        summary=updated.health_tracking,
        trends=tracking_trends(upload.entries),
        coalesced=coalesced,
    )
