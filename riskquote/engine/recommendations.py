"""
Recommendation Engine.

Threshold rules over the FeatureVector (and, for one rule, the Health
contribution total) evaluated in a fixed priority order. Each rule fires at
most once per recompute and the list is capped. A rule never fires on a
feature that was filled from defaults, since advice about a value the user
never gave would be guesswork.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Optional

import structlog

from riskquote.config import settings
from riskquote.engine.features import FeatureVector
from riskquote.schemas.analysis import FactorCategory, FactorContribution

logger = structlog.get_logger(__name__)

DEFAULT_RECOMMENDATIONS: tuple[str, ...] = (
    "Maintain your current healthy lifestyle habits",
    "Consider annual health checkups to track progress",
)

WEARABLE_RECOMMENDATION = (
    "Connect a wearable device to track heart rate, steps and sleep for more accurate pricing"
)

# Health contributions above this total trigger a screening recommendation.
HEALTH_SCREENING_THRESHOLD = 15.0


@dataclass(frozen=True)
class RecommendationRule:
    key: str
    features: tuple[str, ...]
    applies: Callable[[FeatureVector, Sequence[FactorContribution]], bool]
    text: str


def _health_total(contributions: Sequence[FactorContribution]) -> float:
    return sum(c.signed_impact for c in contributions if c.category == FactorCategory.HEALTH)


RULES: tuple[RecommendationRule, ...] = (
    RecommendationRule(
        "smoking_cessation", ("smoking_status",),
        lambda f, _: f["smoking_status"] >= 2,
        "Quit smoking: a cessation program is the single biggest improvement you can make to your risk score",
    ),
    RecommendationRule(
        "condition_management", ("existing_conditions_count",),
        lambda f, _: f["existing_conditions_count"] >= 1,
        "Work with your doctor on a management plan for your existing conditions",
    ),
    RecommendationRule(
        "weight_management", ("bmi",),
        lambda f, _: f["bmi"] >= 25 or f["bmi"] < 18.5,
        "Work toward a BMI in the 18.5-25 range through balanced diet and regular activity",
    ),
    RecommendationRule(
        "increase_exercise", ("exercise_frequency",),
        lambda f, _: f["exercise_frequency"] < 3,
        "Increase exercise to at least 3 sessions per week",
    ),
    RecommendationRule(
        "stress_management", ("stress_level",),
        lambda f, _: f["stress_level"] > 7,
        "Practice stress management such as mindfulness or regular breaks to bring stress levels down",
    ),
    RecommendationRule(
        "reduce_alcohol", ("alcohol_consumption",),
        lambda f, _: f["alcohol_consumption"] >= 3,
        "Reduce alcohol consumption to moderate levels or below",
    ),
    RecommendationRule(
        "improve_sleep", ("sleep_hours",),
        lambda f, _: f["sleep_hours"] < 6 or f["sleep_hours"] > 9,
        "Aim for 7-9 hours of sleep per night",
    ),
    RecommendationRule(
        "daily_steps", ("avg_daily_steps",),
        lambda f, _: f["avg_daily_steps"] < 7500,
        "Build up gradually to 10,000 steps per day",
    ),
    RecommendationRule(
        "emergency_fund", ("has_emergency_fund",),
        lambda f, _: f["has_emergency_fund"] <= 0,
        "Build an emergency fund covering 3-6 months of expenses",
    ),
    RecommendationRule(
        "health_screening", (),
        lambda _, c: _health_total(c) > HEALTH_SCREENING_THRESHOLD,
        "Schedule a comprehensive health screening to review your health risk factors",
    ),
)


class RecommendationEngine:
    """Features + contributions → ordered recommendation strings."""

    def __init__(
        self,
        rules: tuple[RecommendationRule, ...] = RULES,
        max_recommendations: Optional[int] = None,
    ):
        self.rules = rules
        self.max_recommendations = (
            settings.max_recommendations if max_recommendations is None else max_recommendations
        )

    def recommend(
        self,
        features: FeatureVector,
        contributions: Sequence[FactorContribution],
    ) -> list[str]:
        fired: list[str] = []
        for rule in self.rules:
            if len(fired) >= self.max_recommendations:
                break
            if any(features.is_defaulted(name) for name in rule.features):
                continue
            if rule.applies(features, contributions):
                fired.append(rule.text)

        if not fired:
            fired = list(DEFAULT_RECOMMENDATIONS)

        has_tracking = not (
            features.is_defaulted("avg_daily_steps") and features.is_defaulted("avg_heart_rate")
        )
        if not has_tracking and WEARABLE_RECOMMENDATION not in fired:
            fired.append(WEARABLE_RECOMMENDATION)

        result = fired[: self.max_recommendations]
        logger.debug(
            "recommendations_derived",
            user_id=features.user_id,
            count=len(result),
        )
        return result
