"""
Trend Predictor.

Projects the score over fixed horizons from the most recent score change:

    slope      = Δscore / months the change took
    shift(h)   = slope × h / (1 + h / DAMPING_MONTHS)     capped at ±MAX_SHIFT
    predicted  = clamp(current + shift(h), floor, ceiling)
    confidence = ceiling × exp(-h / CONFIDENCE_DECAY_MONTHS)

The damping term bends long-horizon projections back toward the current
score, so the extrapolation is bounded. Confidence strictly decreases with
horizon. With no usable history the prediction is flat at reduced confidence.

The most recent change is found by walking back from the current score to
the latest historical score that differs from it. Its elapsed time is the
span between that point and the next observation, never the wall clock, so
re-running on unchanged data yields the same predictions.
"""

import math
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Optional

import structlog

from riskquote.config import settings
from riskquote.schemas.analysis import Prediction, ScorePoint, TrendLabel

logger = structlog.get_logger(__name__)

DAMPING_MONTHS = 6.0
MAX_SHIFT = 15.0
CONFIDENCE_DECAY_MONTHS = 40.0
DAYS_PER_MONTH = 30.4375

# |predicted - current| at or below this is reported as stable
STABLE_BAND = 0.5
MAX_CONFIDENCE_DIGITS = 6


def rounded_confidences(values: Sequence[float]) -> list[float]:
    """
    Round a strictly decreasing sequence to the fewest decimals (one at
    least) that keep it strictly decreasing.
    """
    for digits in range(1, MAX_CONFIDENCE_DIGITS + 1):
        rounded = [round(v, digits) for v in values]
        if all(a > b for a, b in zip(rounded, rounded[1:])):
            return rounded
    return list(values)


def timeframe_label(months: int) -> str:
    if months % 12 == 0:
        years = months // 12
        return f"{years} year" if years == 1 else f"{years} years"
    return f"{months} month" if months == 1 else f"{months} months"


class TrendPredictor:
    """Current score + optional history → Prediction per horizon."""

    def __init__(
        self,
        horizons: Optional[Sequence[int]] = None,
        confidence_ceiling: Optional[float] = None,
        flat_confidence_factor: Optional[float] = None,
        floor: Optional[float] = None,
        ceiling: Optional[float] = None,
        history_window: Optional[int] = None,
    ):
        self.horizons = sorted(set(horizons or settings.prediction_horizons_months))
        if not self.horizons or self.horizons[0] < 1:
            raise ValueError("Prediction horizons must be positive month counts")
        self.confidence_ceiling = (
            settings.confidence_ceiling if confidence_ceiling is None else confidence_ceiling
        )
        self.flat_confidence_factor = (
            settings.flat_confidence_factor if flat_confidence_factor is None else flat_confidence_factor
        )
        self.floor = settings.score_floor if floor is None else floor
        self.ceiling = settings.score_ceiling if ceiling is None else ceiling
        self.history_window = settings.history_window if history_window is None else history_window

    def monthly_slope(
        self,
        current_score: float,
        history: Sequence[ScorePoint],
        now: Optional[datetime] = None,
    ) -> Optional[float]:
        """Score points per month of the most recent change, or None."""
        points = sorted(history, key=lambda p: p.generated_at)[-self.history_window:]
        if not points:
            return None

        next_seen = now or datetime.now(timezone.utc)
        for point in reversed(points):
            if not math.isclose(point.overall_score, current_score, abs_tol=1e-9):
                elapsed_days = (_aware(next_seen) - _aware(point.generated_at)).total_seconds() / 86400
                months = max(elapsed_days / DAYS_PER_MONTH, 1.0)
                return (current_score - point.overall_score) / months
            next_seen = point.generated_at
        return None

    def predict(
        self,
        current_score: float,
        history: Sequence[ScorePoint] = (),
        now: Optional[datetime] = None,
        risk_drivers: Sequence[str] = (),
        protective_drivers: Sequence[str] = (),
    ) -> list[Prediction]:
        slope = self.monthly_slope(current_score, history, now)
        flat = slope is None

        confidences = [
            self.confidence_ceiling * math.exp(-h / CONFIDENCE_DECAY_MONTHS)
            * (self.flat_confidence_factor if flat else 1.0)
            for h in self.horizons
        ]

        predictions: list[Prediction] = []
        for h, confidence in zip(self.horizons, rounded_confidences(confidences)):
            if flat:
                predicted = current_score
            else:
                shift = slope * h / (1 + h / DAMPING_MONTHS)
                shift = max(-MAX_SHIFT, min(MAX_SHIFT, shift))
                predicted = min(max(current_score + shift, self.floor), self.ceiling)

            predicted = round(predicted, 2)
            trend = _trend(predicted - current_score)
            predictions.append(Prediction(
                timeframe_label=timeframe_label(h),
                horizon_months=h,
                predicted_score=predicted,
                confidence_percent=confidence,
                trend=trend,
                drivers=_drivers(trend, slope, risk_drivers, protective_drivers),
            ))

        logger.debug(
            "trend_predicted",
            current_score=current_score,
            slope=slope,
            flat=flat,
            horizons=self.horizons,
        )
        return predictions


def _trend(delta: float) -> TrendLabel:
    # Rising risk score = declining health outlook.
    if delta > STABLE_BAND:
        return TrendLabel.DECLINING
    if delta < -STABLE_BAND:
        return TrendLabel.IMPROVING
    return TrendLabel.STABLE


def _drivers(
    trend: TrendLabel,
    slope: Optional[float],
    risk_drivers: Sequence[str],
    protective_drivers: Sequence[str],
) -> list[str]:
    if slope is None:
        return ["No score history yet; projection holds the current score"]
    momentum = f"Recent trend of {slope:+.1f} pts/month"
    if trend == TrendLabel.DECLINING:
        return [momentum, *risk_drivers[:2]]
    if trend == TrendLabel.IMPROVING:
        return [momentum, *protective_drivers[:2]]
    return [momentum]


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
