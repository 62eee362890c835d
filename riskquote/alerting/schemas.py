"""
Risk Alert Schemas.

A RiskAlert is immutable once created except for its acknowledgement, which
the consumer sets exactly once. AlertNotification is the record handed to
the user's notification surface.
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from riskquote.schemas.analysis import RiskCategory


# ── Enums ──────────────────────────────────────────────────────────────


class TriggerReason(StrEnum):
    CATEGORY_CHANGE = "category_change"         # Low/Medium/High boundary crossed
    SIGNIFICANT_INCREASE = "significant_increase"
    SIGNIFICANT_DECREASE = "significant_decrease"


class AlertPriority(StrEnum):
    MEDIUM = "medium"
    HIGH = "high"


# ── Alert Record ───────────────────────────────────────────────────────


class RiskAlert(BaseModel):
    """
    A fired score-change alert.
    """
    model_config = ConfigDict(frozen=True)

    alert_id: str
    user_id: str
    trigger_reason: TriggerReason
    previous_score: float
    new_score: float
    previous_category: RiskCategory
    new_category: RiskCategory

    title: str
    message: str
    priority: AlertPriority = AlertPriority.MEDIUM

    created_at: datetime
    acknowledged: bool = False
    acknowledged_at: Optional[datetime] = None

    @property
    def dedup_key(self) -> tuple[str, str, float]:
        return (self.user_id, self.trigger_reason.value, self.new_score)

    @property
    def delta(self) -> float:
        return round(self.new_score - self.previous_score, 4)


class AlertNotification(BaseModel):
    """Notification record delivered to the user's notification surface."""
    notification_type: str = "risk_score_change"
    user_id: str
    alert_id: str
    title: str
    message: str
    priority: AlertPriority
    category: str = "health"
    action_url: str = "/dashboard/risk"
    metadata: dict = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_alert(cls, alert: RiskAlert) -> "AlertNotification":
        return cls(
            user_id=alert.user_id,
            alert_id=alert.alert_id,
            title=alert.title,
            message=alert.message,
            priority=alert.priority,
            metadata={
                "trigger_reason": alert.trigger_reason.value,
                "previous_score": alert.previous_score,
                "new_score": alert.new_score,
                "previous_category": alert.previous_category.value,
                "new_category": alert.new_category.value,
            },
            created_at=alert.created_at,
        )


class AlertListResponse(BaseModel):
    alerts: list[RiskAlert]
    total: int
    unacknowledged: int
