"""
Tests for the Recommendation Engine.
"""

from datetime import date

import pytest

from conftest import AS_OF
from riskquote.engine.features import FEATURE_DEFAULTS, FeatureExtractor, FeatureVector
from riskquote.engine.recommendations import (
    DEFAULT_RECOMMENDATIONS,
    RULES,
    WEARABLE_RECOMMENDATION,
    RecommendationEngine,
)
from riskquote.schemas.analysis import FactorCategory, FactorContribution, RiskDirection

HEALTHY = {
    **FEATURE_DEFAULTS,
    "smoking_status": 0.0,
    "existing_conditions_count": 0.0,
    "bmi": 22.0,
    "exercise_frequency": 4.0,
    "stress_level": 3.0,
    "alcohol_consumption": 1.0,
    "sleep_hours": 8.0,
    "avg_daily_steps": 10500.0,
    "avg_heart_rate": 65.0,
    "has_emergency_fund": 1.0,
}


def _vector(defaulted=(), **overrides) -> FeatureVector:
    return FeatureVector(
        user_id="u",
        data={**HEALTHY, **overrides},
        as_of=date(2025, 1, 1),
        defaulted=frozenset(defaulted),
    )


def _text(key: str) -> str:
    return next(r.text for r in RULES if r.key == key)


@pytest.fixture
def engine():
    return RecommendationEngine(max_recommendations=4)


class TestRecommendations:
    def test_worked_example(self, engine, snapshot):
        features = FeatureExtractor().extract(snapshot, as_of=AS_OF)
        assert engine.recommend(features, []) == [
            _text("weight_management"),
            WEARABLE_RECOMMENDATION,
        ]

    def test_healthy_profile_gets_defaults(self, engine):
        assert engine.recommend(_vector(), []) == list(DEFAULT_RECOMMENDATIONS)

    def test_priority_order_and_cap(self, engine):
        features = _vector(
            smoking_status=2.0,
            existing_conditions_count=2.0,
            bmi=32.0,
            exercise_frequency=1.0,
            stress_level=9.0,
            alcohol_consumption=3.0,
        )
        assert engine.recommend(features, []) == [
            _text("smoking_cessation"),
            _text("condition_management"),
            _text("weight_management"),
            _text("increase_exercise"),
        ]

    def test_each_rule_fires_once(self, engine):
        features = _vector(sleep_hours=4.0)
        result = engine.recommend(features, [])
        assert result.count(_text("improve_sleep")) == 1

    def test_quit_smoking_text(self, engine):
        result = engine.recommend(_vector(smoking_status=2.0), [])
        assert result[0].startswith("Quit smoking")

    def test_exercise_threshold(self, engine):
        assert _text("increase_exercise") == "Increase exercise to at least 3 sessions per week"
        assert _text("increase_exercise") in engine.recommend(_vector(exercise_frequency=2.5), [])
        assert _text("increase_exercise") not in engine.recommend(_vector(exercise_frequency=3.0), [])

    @pytest.mark.parametrize("hours,fires", [(5.5, True), (6.0, False), (9.0, False), (9.5, True)])
    def test_sleep_band(self, engine, hours, fires):
        assert (_text("improve_sleep") in engine.recommend(_vector(sleep_hours=hours), [])) is fires

    def test_defaulted_feature_never_fires_rule(self, engine):
        features = _vector(defaulted={"bmi"}, bmi=32.0)
        assert _text("weight_management") not in engine.recommend(features, [])

    def test_health_screening_from_contributions(self, engine):
        contributions = [
            FactorContribution(
                name="Existing medical conditions",
                category=FactorCategory.HEALTH,
                signed_impact=16.0,
                direction=RiskDirection.POSITIVE,
                explanation_text="2 pre-existing conditions reported.",
            )
        ]
        assert engine.recommend(_vector(), contributions) == [_text("health_screening")]


class TestWearableRecommendation:
    def test_added_without_tracking(self, engine):
        features = _vector(defaulted={"avg_daily_steps", "avg_heart_rate"})
        assert engine.recommend(features, []) == [*DEFAULT_RECOMMENDATIONS, WEARABLE_RECOMMENDATION]

    def test_not_added_with_partial_tracking(self, engine):
        features = _vector(defaulted={"avg_heart_rate"})
        assert WEARABLE_RECOMMENDATION not in engine.recommend(features, [])

    def test_dropped_when_cap_reached(self, engine):
        features = _vector(
            defaulted={"avg_daily_steps", "avg_heart_rate"},
            smoking_status=2.0,
            existing_conditions_count=1.0,
            bmi=31.0,
            exercise_frequency=0.0,
        )
        result = engine.recommend(features, [])
        assert len(result) == 4
        assert WEARABLE_RECOMMENDATION not in result
