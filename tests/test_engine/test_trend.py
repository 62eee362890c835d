"""
Tests for the Trend Predictor.

Flat fallback without history, damped and capped slope projection,
confidence decay, and idempotence against the wall clock.
"""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from riskquote.engine.trend import DAYS_PER_MONTH, TrendPredictor, rounded_confidences, timeframe_label
from riskquote.schemas.analysis import ScorePoint, TrendLabel

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def predictor():
    return TrendPredictor(
        horizons=[1, 3, 6, 12],
        confidence_ceiling=96.0,
        flat_confidence_factor=0.85,
        floor=5.0,
        ceiling=95.0,
        history_window=5,
    )


def _point(days: float, score: float) -> ScorePoint:
    return ScorePoint(generated_at=T0 + timedelta(days=days), overall_score=score)


class TestFlatPrediction:
    def test_no_history_holds_score(self, predictor):
        predictions = predictor.predict(42.0)
        assert [p.predicted_score for p in predictions] == [42.0, 42.0, 42.0, 42.0]
        assert all(p.trend == TrendLabel.STABLE for p in predictions)

    def test_no_history_reduced_confidence(self, predictor):
        predictions = predictor.predict(42.0)
        assert [p.confidence_percent for p in predictions] == [79.6, 75.7, 70.2, 60.5]

    def test_flat_driver_message(self, predictor):
        p = predictor.predict(42.0)[0]
        assert p.drivers == ["No score history yet; projection holds the current score"]

    def test_unchanged_history_is_flat(self, predictor):
        history = [_point(0, 42.0), _point(30, 42.0)]
        predictions = predictor.predict(42.0, history=history, now=T0 + timedelta(days=60))
        assert [p.predicted_score for p in predictions] == [42.0] * 4
        assert predictions[0].confidence_percent == 79.6

    def test_changes_outside_window_ignored(self):
        predictor = TrendPredictor(horizons=[3], history_window=2)
        history = [_point(0, 10.0), _point(30, 46.0), _point(60, 46.0)]
        (p,) = predictor.predict(46.0, history=history, now=T0 + timedelta(days=90))
        assert p.predicted_score == 46.0


class TestSlopeProjection:
    def test_damped_projection(self, predictor):
        history = [_point(0, 40.0)]
        now = T0 + timedelta(days=2 * DAYS_PER_MONTH)
        predictions = predictor.predict(46.0, history=history, now=now)
        # slope 3 pts/month: shift = 3h / (1 + h/6)
        assert [p.predicted_score for p in predictions] == [48.57, 52.0, 55.0, 58.0]
        assert all(p.trend == TrendLabel.DECLINING for p in predictions)

    def test_full_confidence_with_history(self, predictor):
        history = [_point(0, 40.0)]
        predictions = predictor.predict(46.0, history=history, now=T0 + timedelta(days=61))
        assert [p.confidence_percent for p in predictions] == [93.6, 89.1, 82.6, 71.1]

    def test_shift_is_capped(self, predictor):
        history = [_point(0, 5.0)]
        predictions = predictor.predict(50.0, history=history, now=T0 + timedelta(days=1))
        assert all(p.predicted_score == 65.0 for p in predictions)

    def test_clamped_to_score_bounds(self, predictor):
        history = [_point(0, 5.0)]
        predictions = predictor.predict(90.0, history=history, now=T0 + timedelta(days=1))
        assert all(p.predicted_score == 95.0 for p in predictions)

    def test_improving_uses_protective_drivers(self, predictor):
        history = [_point(0, 60.0)]
        (p, *_) = predictor.predict(
            50.0,
            history=history,
            now=T0 + timedelta(days=5 * DAYS_PER_MONTH),
            risk_drivers=["Obese BMI"],
            protective_drivers=["Non-smoker", "Regular exercise", "Low stress"],
        )
        assert p.trend == TrendLabel.IMPROVING
        assert p.drivers == ["Recent trend of -2.0 pts/month", "Non-smoker", "Regular exercise"]

    def test_declining_uses_risk_drivers(self, predictor):
        history = [_point(0, 40.0)]
        (p, *_) = predictor.predict(
            46.0,
            history=history,
            now=T0 + timedelta(days=2 * DAYS_PER_MONTH),
            risk_drivers=["Current smoker"],
            protective_drivers=["Non-smoker"],
        )
        assert p.drivers == ["Recent trend of +3.0 pts/month", "Current smoker"]


class TestIdempotence:
    def test_elapsed_time_ends_at_next_observation(self, predictor):
        history = [_point(0, 40.0), _point(30, 46.0), _point(31, 46.0)]
        slope = predictor.monthly_slope(46.0, history, now=T0 + timedelta(days=400))
        # 30 days < 1 month floor → full 6 pt change per month
        assert slope == pytest.approx(6.0)

    def test_same_predictions_at_different_wall_clock(self, predictor):
        history = [_point(0, 40.0), _point(45, 46.0)]
        early = predictor.predict(46.0, history=history, now=T0 + timedelta(days=50))
        late = predictor.predict(46.0, history=history, now=T0 + timedelta(days=500))
        assert early == late

    def test_naive_timestamps_treated_as_utc(self, predictor):
        naive = [ScorePoint(generated_at=datetime(2025, 1, 1), overall_score=40.0)]
        slope = predictor.monthly_slope(46.0, naive, now=T0 + timedelta(days=2 * DAYS_PER_MONTH))
        assert slope == pytest.approx(3.0)


class TestConfiguration:
    def test_non_positive_horizon_rejected(self):
        with pytest.raises(ValueError):
            TrendPredictor(horizons=[0, 3])

    def test_horizons_sorted_and_unique(self):
        predictor = TrendPredictor(horizons=[12, 3, 3, 1])
        assert predictor.horizons == [1, 3, 12]

    @pytest.mark.parametrize(
        "months,label",
        [(1, "1 month"), (3, "3 months"), (6, "6 months"), (12, "1 year"), (24, "2 years")],
    )
    def test_timeframe_label(self, months, label):
        assert timeframe_label(months) == label

    def test_long_horizons_keep_confidence_distinct(self):
        predictor = TrendPredictor(horizons=[1, 240, 241, 242])
        confidences = [p.confidence_percent for p in predictor.predict(50.0)]
        assert all(a > b for a, b in zip(confidences, confidences[1:]))
        assert confidences[1:] == [0.202, 0.197, 0.192]

    def test_rounded_confidences(self):
        assert rounded_confidences([79.61, 75.68]) == [79.6, 75.7]
        assert rounded_confidences([0.2384, 0.2325]) == [0.24, 0.23]


history_points = st.lists(
    st.tuples(
        st.floats(min_value=0, max_value=720, allow_nan=False),
        st.floats(min_value=5, max_value=95, allow_nan=False),
    ),
    max_size=8,
)


class TestTrendProperties:
    @given(
        current=st.floats(min_value=5, max_value=95, allow_nan=False),
        raw_history=history_points,
    )
    @settings(max_examples=150)
    def test_confidence_strictly_decreasing(self, current, raw_history):
        """Longer horizons are never more confident."""
        predictor = TrendPredictor(horizons=[1, 3, 6, 12, 24])
        history = [_point(d, s) for d, s in raw_history]
        predictions = predictor.predict(current, history=history, now=T0 + timedelta(days=800))
        confidences = [p.confidence_percent for p in predictions]
        assert all(a > b for a, b in zip(confidences, confidences[1:]))

    @given(
        current=st.floats(min_value=5, max_value=95, allow_nan=False),
        raw_history=history_points,
    )
    @settings(max_examples=150)
    def test_predictions_within_bounds(self, current, raw_history):
        predictor = TrendPredictor(horizons=[1, 3, 6, 12])
        history = [_point(d, s) for d, s in raw_history]
        for p in predictor.predict(current, history=history, now=T0 + timedelta(days=800)):
            assert 5.0 <= p.predicted_score <= 95.0
            assert abs(p.predicted_score - round(current, 2)) <= 15.0 + 0.01
