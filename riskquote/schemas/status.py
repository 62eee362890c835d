"""Outcome of the most recent recompute attempt per user."""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class RecomputeOutcome(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"         # Scoring invariant violated


class RecomputeStatus(BaseModel):
    """
    Last recompute attempt for a user.

    `stale` is true while the latest attempt failed: the persisted analysis
    is the last known good one, not a reflection of the current profile.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    outcome: RecomputeOutcome
    attempted_at: datetime
    last_success_at: Optional[datetime] = None
    reason: Optional[str] = None
    message: Optional[str] = None

    @property
    def stale(self) -> bool:
        return self.outcome != RecomputeOutcome.SUCCEEDED
