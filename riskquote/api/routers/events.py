"""
Change Notification Endpoint.

POST /api/v1/events — a questionnaire, health-tracking record or assessment
changed for a user. The recompute is scheduled, not awaited.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from riskquote.api.deps import get_pipeline
from riskquote.pipeline.recompute import RecomputePipeline
from riskquote.schemas.events import ChangedEntity, ChangeEvent

router = APIRouter(prefix="/api/v1/events", tags=["events"])

# Periodic and refresh triggers originate inside the service.
EXTERNAL_ENTITIES = {
    ChangedEntity.QUESTIONNAIRE,
    ChangedEntity.HEALTH_TRACKING,
    ChangedEntity.ASSESSMENT,
}


class EventAccepted(BaseModel):
    accepted: bool = True
    user_id: str
    changed_entity: ChangedEntity
    coalesced: bool               # Merged into an in-flight user's follow-up run


@router.post("", status_code=202, response_model=EventAccepted)
async def receive_change_event(
    event: ChangeEvent,
    pipeline: RecomputePipeline = Depends(get_pipeline),
):
    if event.changed_entity not in EXTERNAL_ENTITIES:
        raise HTTPException(
            status_code=422,
            detail=f"changed_entity must be one of {sorted(e.value for e in EXTERNAL_ENTITIES)}",
        )
    structlog.contextvars.bind_contextvars(user_id=event.user_id, trigger=event.changed_entity.value)
    coalesced = pipeline.is_busy(event.user_id)
    pipeline.submit(event)
    return EventAccepted(
        user_id=event.user_id,
        changed_entity=event.changed_entity,
        coalesced=coalesced,
    )
