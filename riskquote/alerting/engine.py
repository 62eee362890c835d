"""
Alert Engine — decides whether a recompute is alert-worthy.

An alert fires only if |Δscore| ≥ significant_change_threshold OR the risk
category changed. When both hold, the category change is the reported
reason. The first analysis for a user has nothing to diff against and never
alerts.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog

from riskquote.alerting.schemas import AlertPriority, RiskAlert, TriggerReason
from riskquote.config import settings
from riskquote.schemas.analysis import RiskAnalysis, RiskCategory

logger = structlog.get_logger(__name__)


class AlertEngine:
    """
    Stateless comparison of a candidate analysis against the persisted one.

    Deduplication is handled by the DedupManager.
    """

    def __init__(self, threshold: Optional[float] = None):
        self.threshold = settings.significant_change_threshold if threshold is None else threshold

    def evaluate(
        self,
        previous: Optional[RiskAnalysis],
        candidate: RiskAnalysis,
        now: Optional[datetime] = None,
    ) -> Optional[RiskAlert]:
        if previous is None:
            return None

        # Rounded so float noise never decides a boundary case.
        delta = round(candidate.overall_score - previous.overall_score, 4)
        category_changed = candidate.category != previous.category

        if category_changed:
            reason = TriggerReason.CATEGORY_CHANGE
        elif abs(delta) >= self.threshold:
            reason = (
                TriggerReason.SIGNIFICANT_INCREASE if delta > 0
                else TriggerReason.SIGNIFICANT_DECREASE
            )
        else:
            logger.debug(
                "alert_not_triggered",
                user_id=candidate.user_id,
                delta=delta,
                threshold=self.threshold,
            )
            return None

        alert = RiskAlert(
            alert_id=f"alert_{uuid.uuid4().hex[:16]}",
            user_id=candidate.user_id,
            trigger_reason=reason,
            previous_score=previous.overall_score,
            new_score=candidate.overall_score,
            previous_category=previous.category,
            new_category=candidate.category,
            title=self._generate_title(reason, candidate),
            message=self._generate_message(reason, previous, candidate, delta),
            priority=self._priority(reason, candidate),
            created_at=now or datetime.now(timezone.utc),
        )

        logger.info(
            "alert_triggered",
            alert_id=alert.alert_id,
            user_id=alert.user_id,
            reason=reason.value,
            previous_score=alert.previous_score,
            new_score=alert.new_score,
        )
        return alert

    @staticmethod
    def _priority(reason: TriggerReason, candidate: RiskAnalysis) -> AlertPriority:
        if reason == TriggerReason.CATEGORY_CHANGE and candidate.category == RiskCategory.HIGH:
            return AlertPriority.HIGH
        return AlertPriority.MEDIUM

    @staticmethod
    def _generate_title(reason: TriggerReason, candidate: RiskAnalysis) -> str:
        if reason == TriggerReason.CATEGORY_CHANGE:
            return f"Risk level changed to {candidate.category.value}"
        if reason == TriggerReason.SIGNIFICANT_INCREASE:
            return "Your risk score went up"
        return "Your risk score improved"

    @staticmethod
    def _generate_message(
        reason: TriggerReason,
        previous: RiskAnalysis,
        candidate: RiskAnalysis,
        delta: float,
    ) -> str:
        base = (
            f"Your risk score moved from {previous.overall_score:.0f} to "
            f"{candidate.overall_score:.0f} ({delta:+.1f} pts)."
        )
        if reason == TriggerReason.CATEGORY_CHANGE:
            base += (
                f" Your risk category is now {candidate.category.value} "
                f"(was {previous.category.value})."
            )
        if candidate.explanation.factors:
            base += f" {candidate.explanation.summary}"
        return base
