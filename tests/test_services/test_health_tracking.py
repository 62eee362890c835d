"""
Tests for health-tracking summaries and trends.
"""

from datetime import date, timedelta

import pytest

from conftest import make_snapshot
from riskquote.schemas.analysis import TrendLabel
from riskquote.services.health_tracking import (
    TrackingEntry,
    attach_tracking,
    improvement_score,
    summarize_tracking,
    tracking_trends,
    trend_direction,
)

DAY0 = date(2025, 2, 1)


def entry(day: int, **metrics) -> TrackingEntry:
    return TrackingEntry(tracking_date=DAY0 + timedelta(days=day), **metrics)


class TestImprovementScore:
    def test_empty_entry_is_baseline(self):
        assert improvement_score(entry(0)) == 50.0

    def test_ideal_entry_capped(self):
        ideal = entry(0, heart_rate=65, steps=12000, sleep=8, exercise_minutes=45)
        # 50 + 15 + 15 + 15 + 10 = 105 → capped
        assert improvement_score(ideal) == 100.0

    @pytest.mark.parametrize(
        "metrics,expected",
        [
            ({"heart_rate": 78}, 60.0),
            ({"heart_rate": 95}, 55.0),
            ({"steps": 8000}, 60.0),
            ({"steps": 5000}, 55.0),
            ({"steps": 3000}, 50.0),
            ({"sleep": 6.5}, 58.0),
            ({"sleep": 5}, 50.0),
            ({"exercise_minutes": 20}, 55.0),
        ],
    )
    def test_metric_bands(self, metrics, expected):
        assert improvement_score(entry(0, **metrics)) == expected

    def test_camel_case_payload(self):
        parsed = TrackingEntry.model_validate({
            "trackingDate": "2025-02-01",
            "dataSource": "fitbit",
            "heartRate": 70,
            "exerciseMinutes": 30,
        })
        assert parsed.data_source == "fitbit"
        assert improvement_score(parsed) == 75.0


class TestSummary:
    def test_no_entries(self):
        assert summarize_tracking([]) is None

    def test_averages_and_latest_score(self):
        entries = [
            entry(0, heart_rate=80, steps=4000, sleep=6),
            entry(1, heart_rate=70, steps=8000, sleep=7),
            entry(2, heart_rate=66, steps=12000, sleep=8, exercise_minutes=40),
        ]
        summary = summarize_tracking(entries)
        assert summary.entry_count == 3
        assert summary.avg_heart_rate == 72.0
        assert summary.avg_steps == 8000.0
        assert summary.avg_sleep_hours == 7.0
        assert summary.avg_weight is None
        # Latest entry: 50 + 15 + 15 + 15 + 10
        assert summary.improvement_score == 100.0
        assert summary.premium_adjustment_pct == 10.0

    def test_window_excludes_old_entries(self):
        entries = [entry(0, steps=1000), entry(40, steps=9000), entry(45, steps=11000)]
        summary = summarize_tracking(entries, days=30)
        assert summary.entry_count == 2
        assert summary.avg_steps == 10000.0

    def test_window_anchor(self):
        entries = [entry(0, steps=6000), entry(40, steps=9000)]
        summary = summarize_tracking(entries, days=30, as_of=DAY0 + timedelta(days=10))
        assert summary.entry_count == 1
        assert summary.avg_steps == 6000.0

    def test_nothing_in_window(self):
        assert summarize_tracking([entry(0)], as_of=DAY0 + timedelta(days=100)) is None


class TestTrends:
    def test_direction_dead_band(self):
        assert trend_direction(100, 101, higher_is_better=True) == TrendLabel.STABLE
        assert trend_direction(100, 110, higher_is_better=True) == TrendLabel.IMPROVING
        assert trend_direction(100, 110, higher_is_better=False) == TrendLabel.DECLINING
        assert trend_direction(None, 110, higher_is_better=True) == TrendLabel.STABLE

    def test_needs_a_week_of_entries(self):
        assert tracking_trends([entry(i) for i in range(6)]) is None

    def test_first_week_vs_last_week(self):
        first = [entry(i, heart_rate=80, steps=5000, sleep=6.0, weight=90) for i in range(7)]
        last = [entry(7 + i, heart_rate=68, steps=9000, sleep=7.5, weight=85) for i in range(7)]
        trends = tracking_trends(last + first)

        assert trends.heart_rate == TrendLabel.IMPROVING
        assert trends.steps == TrendLabel.IMPROVING
        assert trends.sleep == TrendLabel.IMPROVING
        assert trends.weight == TrendLabel.IMPROVING
        assert trends.overall_improvement is True


class TestAttachTracking:
    def test_summary_replaces_profile_tracking(self):
        snapshot = make_snapshot()
        entries = [entry(i, heart_rate=64, steps=11000, sleep=8, exercise_minutes=40) for i in range(3)]

        updated = attach_tracking(snapshot, entries)

        assert updated.health_tracking.entry_count == 3
        assert updated.health_tracking.improvement_score == 100.0
        assert updated.health == snapshot.health
        assert snapshot.health_tracking is None

    def test_empty_window_clears_summary(self):
        snapshot = make_snapshot(healthTracking={"entryCount": 5, "improvementScore": 92})
        updated = attach_tracking(snapshot, [entry(0, steps=9000)], as_of=DAY0 + timedelta(days=90))
        assert updated.health_tracking is None
