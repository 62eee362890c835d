"""
Risk Analysis API Endpoints.

GET  /api/v1/risk/{user_id}          — latest RiskAnalysis + staleness
GET  /api/v1/risk/{user_id}/history  — score history across versions
POST /api/v1/risk/{user_id}/refresh  — user-initiated recompute
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from riskquote.alerting.schemas import RiskAlert
from riskquote.api.deps import get_pipeline, get_store
from riskquote.db.store import RecordStore
from riskquote.pipeline.recompute import RecomputePipeline
from riskquote.schemas.analysis import RiskAnalysis, ScorePoint
from riskquote.schemas.status import RecomputeStatus

router = APIRouter(prefix="/api/v1/risk", tags=["risk"])


class RiskView(BaseModel):
    analysis: RiskAnalysis
    stale: bool                              # Latest recompute attempt failed
    last_attempt: Optional[RecomputeStatus] = None


class ScoreHistoryResponse(BaseModel):
    user_id: str
    points: list[ScorePoint]


class RefreshResponse(BaseModel):
    analysis: RiskAnalysis
    state: str
    alert: Optional[RiskAlert] = None


@router.get("/{user_id}", response_model=RiskView)
async def get_risk_analysis(
    user_id: str,
    store: RecordStore = Depends(get_store),
):
    """
    Latest analysis for the user. When the most recent recompute failed,
    the last good analysis is returned with `stale: true`.
    """
    analysis = await store.latest_analysis(user_id)
    if analysis is None:
        raise HTTPException(status_code=404, detail=f"No risk analysis for user {user_id}")
    status = await store.get_status(user_id)
    return RiskView(
        analysis=analysis,
        stale=bool(status and status.stale),
        last_attempt=status,
    )


@router.get("/{user_id}/history", response_model=ScoreHistoryResponse)
async def get_score_history(
    user_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    store: RecordStore = Depends(get_store),
):
    points = await store.score_history(user_id, limit=limit)
    return ScoreHistoryResponse(user_id=user_id, points=points)


@router.post("/{user_id}/refresh", response_model=RefreshResponse)
async def refresh_risk_analysis(
    user_id: str,
    pipeline: RecomputePipeline = Depends(get_pipeline),
):
    """Recompute now and return the resulting analysis."""
    result = await pipeline.refresh(user_id)
    return RefreshResponse(
        analysis=result.analysis,
        state=result.final_state.value,
        alert=result.alert,
    )
