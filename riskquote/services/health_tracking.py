"""
Health Tracking Summary — wearable / manual entries → HealthTrackingSummary.

Each entry gets an improvement score (base 50, capped at 100):

    heart rate   60-75 → +15 | 76-80 → +10 | other → +5
    steps        ≥10000 → +15 | ≥7500 → +10 | ≥5000 → +5
    sleep        7-9h → +15 | ≥6h → +8
    exercise     ≥30 min → +10 | ≥20 min → +5

The latest entry's score sets the premium adjustment (≥90 → 10%,
≥80 → 7%, ≥75 → 5%). Metrics absent from an entry contribute nothing.
"""

from collections.abc import Sequence
from datetime import date, timedelta
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from riskquote.engine.pricing import wellness_discount_pct
from riskquote.schemas.analysis import TrendLabel
from riskquote.schemas.profile import HealthTrackingSummary, ProfileSnapshot

logger = structlog.get_logger(__name__)

IMPROVEMENT_BASE = 50.0
IMPROVEMENT_CAP = 100.0

# Relative change below this (percent) is stable.
TREND_DEAD_BAND_PCT = 2.0
TREND_MIN_ENTRIES = 7


class TrackingEntry(BaseModel):
    """One day of health-tracking data."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    tracking_date: date
    data_source: str = "manual"
    heart_rate: Optional[float] = Field(default=None, gt=0)
    steps: Optional[float] = Field(default=None, ge=0)
    sleep: Optional[float] = Field(default=None, ge=0, le=24)
    weight: Optional[float] = Field(default=None, gt=0)
    exercise_minutes: Optional[float] = Field(default=None, ge=0)


class TrackingTrends(BaseModel):
    heart_rate: TrendLabel
    steps: TrendLabel
    sleep: TrendLabel
    weight: TrendLabel
    overall_improvement: bool


def improvement_score(entry: TrackingEntry) -> float:
    score = IMPROVEMENT_BASE

    if entry.heart_rate:
        if 60 <= entry.heart_rate <= 75:
            score += 15
        elif 75 < entry.heart_rate <= 80:
            score += 10
        else:
            score += 5

    if entry.steps:
        if entry.steps >= 10000:
            score += 15
        elif entry.steps >= 7500:
            score += 10
        elif entry.steps >= 5000:
            score += 5

    if entry.sleep:
        if 7 <= entry.sleep <= 9:
            score += 15
        elif entry.sleep >= 6:
            score += 8

    if entry.exercise_minutes:
        if entry.exercise_minutes >= 30:
            score += 10
        elif entry.exercise_minutes >= 20:
            score += 5

    return min(score, IMPROVEMENT_CAP)


def _average(entries: Sequence[TrackingEntry], attr: str) -> Optional[float]:
    values = [getattr(e, attr) for e in entries if getattr(e, attr) is not None]
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def summarize_tracking(
    entries: Sequence[TrackingEntry],
    days: int = 30,
    as_of: Optional[date] = None,
) -> Optional[HealthTrackingSummary]:
    """
    Aggregate the entries of the last `days` days ending at `as_of`
    (default: the most recent entry's date). None when nothing is in range.
    """
    if not entries:
        return None

    ordered = sorted(entries, key=lambda e: e.tracking_date, reverse=True)
    anchor = as_of or ordered[0].tracking_date
    window_start = anchor - timedelta(days=days)
    window = [e for e in ordered if window_start < e.tracking_date <= anchor]
    if not window:
        return None

    latest_score = improvement_score(window[0])
    summary = HealthTrackingSummary(
        entry_count=len(window),
        avg_heart_rate=_average(window, "heart_rate"),
        avg_steps=_average(window, "steps"),
        avg_sleep_hours=_average(window, "sleep"),
        avg_weight=_average(window, "weight"),
        improvement_score=latest_score,
        premium_adjustment_pct=float(wellness_discount_pct(latest_score)),
    )

    logger.debug(
        "tracking_summarized",
        entry_count=summary.entry_count,
        improvement_score=latest_score,
        days=days,
    )
    return summary


def trend_direction(old: Optional[float], new: Optional[float], higher_is_better: bool) -> TrendLabel:
    if not old or not new:
        return TrendLabel.STABLE
    pct_change = (new - old) / old * 100
    if abs(pct_change) < TREND_DEAD_BAND_PCT:
        return TrendLabel.STABLE
    improving = pct_change > 0 if higher_is_better else pct_change < 0
    return TrendLabel.IMPROVING if improving else TrendLabel.DECLINING


def tracking_trends(entries: Sequence[TrackingEntry]) -> Optional[TrackingTrends]:
    """
    Compare the oldest week against the newest week of entries.
    Needs at least seven entries.
    """
    if len(entries) < TREND_MIN_ENTRIES:
        return None

    ordered = sorted(entries, key=lambda e: e.tracking_date)
    first_week = ordered[:TREND_MIN_ENTRIES]
    last_week = ordered[-TREND_MIN_ENTRIES:]

    def compare(attr: str, higher_is_better: bool) -> TrendLabel:
        return trend_direction(_average(first_week, attr), _average(last_week, attr), higher_is_better)

    return TrackingTrends(
        heart_rate=compare("heart_rate", higher_is_better=False),
        steps=compare("steps", higher_is_better=True),
        sleep=compare("sleep", higher_is_better=True),
        weight=compare("weight", higher_is_better=False),
        overall_improvement=improvement_score(ordered[-1]) > improvement_score(ordered[0]),
    )


def attach_tracking(
    snapshot: ProfileSnapshot,
    entries: Sequence[TrackingEntry],
    days: int = 30,
    as_of: Optional[date] = None,
) -> ProfileSnapshot:
    """
    Return a copy of the snapshot carrying the summary of `entries`.

    An empty window clears any previous summary so stale wearable data never
    keeps a wellness discount alive.
    """
    summary = summarize_tracking(entries, days=days, as_of=as_of)
    logger.info(
        "tracking_attached",
        user_id=snapshot.user_id,
        entries=len(entries),
        improvement_score=summary.improvement_score if summary else None,
    )
    return snapshot.model_copy(update={"health_tracking": summary})
