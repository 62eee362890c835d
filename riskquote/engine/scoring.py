"""
Additive Scoring Model.

    score = BASE_SCORE + Σ factor.signed_impact        (then clamped to [5, 95])

Each factor is a pure rule over one or more related features and belongs to
exactly one category. A feature is attributed to exactly one factor, so the
contributions of one score never double-count. Factors whose impact is zero
are left out of the contribution list.

The model is side-effect free: same FeatureVector ⇒ same ScoreResult.
"""

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Optional

import structlog

from riskquote.config import settings
from riskquote.errors import ScoringInvariantError
from riskquote.schemas.analysis import (
    FactorCategory,
    FactorContribution,
    RiskCategory,
    RiskDirection,
)

logger = structlog.get_logger(__name__)

# Fixed tie-break order when two factors carry the same absolute impact.
CATEGORY_PRIORITY: dict[FactorCategory, int] = {
    FactorCategory.HEALTH: 0,
    FactorCategory.LIFESTYLE: 1,
    FactorCategory.DEMOGRAPHIC: 2,
    FactorCategory.FINANCIAL: 3,
}

# (display name, signed impact, explanation); impact 0 = factor not present
RuleOutcome = tuple[str, float, str]


@dataclass(frozen=True)
class FactorRule:
    key: str
    category: FactorCategory
    features: tuple[str, ...]
    evaluate: Callable[[Mapping[str, float]], Optional[RuleOutcome]]


@dataclass(frozen=True)
class ScoreResult:
    base_score: float
    raw_score: float                # Before clamping
    overall_score: float            # Clamped to [floor, ceiling]
    category: RiskCategory
    contributions: list[FactorContribution]


# ── Rules ─────────────────────────────────────────────────────────────────


def _smoking(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    status = f["smoking_status"]
    if status >= 2:
        return ("Current smoker", 25.0,
                "Current tobacco use is the largest avoidable driver of mortality risk.")
    if status >= 1:
        return ("Former smoker", 8.0,
                "Past tobacco use still carries elevated long-term risk.")
    return ("Non-smoker", -6.0,
            "Never smoking lowers cardiovascular and cancer risk.")


def _conditions(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    n = int(f["existing_conditions_count"])
    if n <= 0:
        return None
    return ("Existing medical conditions", float(min(8 * n, 32)),
            f"{n} pre-existing condition{'s' if n != 1 else ''} reported.")


def _bmi(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    bmi = f["bmi"]
    if bmi < 18.5:
        return ("Underweight BMI", 4.0, f"BMI of {bmi:.1f} is below the healthy range (18.5-25).")
    if bmi < 25:
        return ("Healthy BMI", -2.0, f"BMI of {bmi:.1f} is within the healthy range.")
    if bmi < 30:
        return ("Overweight BMI", 2.0, f"BMI of {bmi:.1f} is above the healthy range (18.5-25).")
    if bmi < 35:
        return ("Obese BMI", 6.0, f"BMI of {bmi:.1f} indicates obesity.")
    return ("Severely obese BMI", 10.0, f"BMI of {bmi:.1f} indicates severe obesity.")


def _heart_rate(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    hr = f["avg_heart_rate"]
    if hr < 60 or hr > 80:
        return ("Resting heart rate out of range", 4.0,
                f"Average resting heart rate of {hr:.0f} bpm is outside 60-80 bpm.")
    return None


def _wellness(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    score = f["wellness_score"]
    if score >= 90:
        return ("Excellent tracked wellness", -3.0,
                f"Health-tracking improvement score of {score:.0f} is excellent.")
    if score >= 75:
        return ("Good tracked wellness", -2.0,
                f"Health-tracking improvement score of {score:.0f} is good.")
    return None


def _steps(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    steps = f["avg_daily_steps"]
    if steps < 5000:
        return ("Low daily activity", 4.0, f"Averaging {steps:,.0f} steps/day (target 10,000).")
    if steps < 7500:
        return ("Below-target daily activity", 2.0, f"Averaging {steps:,.0f} steps/day (target 10,000).")
    if steps >= 10000:
        return ("High daily activity", -2.0, f"Averaging {steps:,.0f} steps/day.")
    return None


def _exercise(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    freq = f["exercise_frequency"]
    if freq < 1:
        return ("Sedentary lifestyle", 8.0, "Little or no weekly exercise.")
    if freq < 2:
        return ("Infrequent exercise", 5.0, f"Exercising about {freq:g}x/week (target 3x/week).")
    if freq < 3:
        return ("Irregular exercise", 2.0, f"Exercising about {freq:g}x/week (target 3x/week).")
    if freq < 5:
        return ("Regular exercise", -4.0, f"Exercising about {freq:g}x/week.")
    return ("Very active lifestyle", -6.0, f"Exercising about {freq:g}x/week.")


def _stress(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    level = f["stress_level"]
    if level > 7:
        return ("High stress", 6.0, f"Self-reported stress of {level:g}/10.")
    if level >= 6:
        return ("Elevated stress", 3.0, f"Self-reported stress of {level:g}/10.")
    if level < 4:
        return ("Low stress", -2.0, f"Self-reported stress of {level:g}/10.")
    return None


def _alcohol(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    level = f["alcohol_consumption"]
    if level >= 3:
        return ("Heavy alcohol use", 6.0, "Heavy alcohol consumption reported.")
    if level >= 2:
        return ("Moderate alcohol use", 1.0, "Moderate alcohol consumption reported.")
    return None


def _sleep(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    hours = f["sleep_hours"]
    if hours < 6:
        return ("Insufficient sleep", 4.0, f"Averaging {hours:.1f}h of sleep (target 7-9h).")
    if hours < 7:
        return ("Short sleep", 1.0, f"Averaging {hours:.1f}h of sleep (target 7-9h).")
    if hours > 9:
        return ("Excessive sleep", 2.0, f"Averaging {hours:.1f}h of sleep (target 7-9h).")
    return None


def _age(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    age = int(f["age"])
    if age < 25:
        return ("Age under 25", 3.0, f"Age {age}: higher accident exposure in early adulthood.")
    if age < 35:
        return ("Age 25-34", -2.0, f"Age {age}: lowest-risk age band.")
    if age < 50:
        return ("Age 35-49", 2.0, f"Age {age}: risk begins to rise with age.")
    if age < 65:
        return ("Age 50-64", 8.0, f"Age {age}: elevated age-related risk.")
    return ("Age 65+", 15.0, f"Age {age}: highest age-related risk band.")


def _occupation(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    if f["hazardous_occupation"] >= 1:
        return ("Hazardous occupation", 5.0, "Occupation carries elevated workplace hazard exposure.")
    return None


def _income(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    income = f["annual_income"]
    if income < 30000:
        return ("Low income", 3.0, f"Annual income of ${income:,.0f} limits financial resilience.")
    if income < 50000:
        return ("Modest income", 1.0, f"Annual income of ${income:,.0f}.")
    if income >= 100000:
        return ("High income", -1.0, f"Annual income of ${income:,.0f} supports financial resilience.")
    return None


def _emergency_fund(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    flag = f["has_emergency_fund"]
    if flag >= 1:
        return ("Emergency fund in place", -1.0, "An emergency fund cushions unexpected costs.")
    if flag <= 0:
        return ("No emergency fund", 3.0, "No emergency fund to absorb unexpected costs.")
    return None


def _existing_coverage(f: Mapping[str, float]) -> Optional[RuleOutcome]:
    if f["has_existing_coverage"] >= 1:
        return ("Existing coverage", -1.0, "Existing insurance coverage reduces financial exposure.")
    return None


DEFAULT_RULES: tuple[FactorRule, ...] = (
    FactorRule("smoking", FactorCategory.HEALTH, ("smoking_status",), _smoking),
    FactorRule("conditions", FactorCategory.HEALTH, ("existing_conditions_count",), _conditions),
    FactorRule("bmi", FactorCategory.HEALTH, ("bmi",), _bmi),
    FactorRule("heart_rate", FactorCategory.HEALTH, ("avg_heart_rate",), _heart_rate),
    FactorRule("wellness", FactorCategory.HEALTH, ("wellness_score",), _wellness),
    FactorRule("daily_activity", FactorCategory.LIFESTYLE, ("avg_daily_steps",), _steps),
    FactorRule("exercise", FactorCategory.LIFESTYLE, ("exercise_frequency",), _exercise),
    FactorRule("stress", FactorCategory.LIFESTYLE, ("stress_level",), _stress),
    FactorRule("alcohol", FactorCategory.LIFESTYLE, ("alcohol_consumption",), _alcohol),
    FactorRule("sleep", FactorCategory.LIFESTYLE, ("sleep_hours",), _sleep),
    FactorRule("age", FactorCategory.DEMOGRAPHIC, ("age",), _age),
    FactorRule("occupation", FactorCategory.DEMOGRAPHIC, ("hazardous_occupation",), _occupation),
    FactorRule("income", FactorCategory.FINANCIAL, ("annual_income",), _income),
    FactorRule("emergency_fund", FactorCategory.FINANCIAL, ("has_emergency_fund",), _emergency_fund),
    FactorRule("existing_coverage", FactorCategory.FINANCIAL, ("has_existing_coverage",), _existing_coverage),
)


def categorize(
    score: float,
    low_upper: Optional[float] = None,
    high_lower: Optional[float] = None,
) -> RiskCategory:
    """Low < 30 ≤ Medium ≤ 70 < High."""
    low_upper = settings.low_risk_upper if low_upper is None else low_upper
    high_lower = settings.high_risk_lower if high_lower is None else high_lower
    if score < low_upper:
        return RiskCategory.LOW
    if score > high_lower:
        return RiskCategory.HIGH
    return RiskCategory.MEDIUM


def rank_key(contribution: FactorContribution) -> tuple:
    """Absolute impact descending, then Health > Lifestyle > Demographic > Financial."""
    return (
        -abs(contribution.signed_impact),
        CATEGORY_PRIORITY[contribution.category],
        contribution.name,
    )


class ScoringModel:
    """
    Fixed base score plus signed per-factor contributions.
    """

    def __init__(
        self,
        rules: tuple[FactorRule, ...] = DEFAULT_RULES,
        base_score: Optional[float] = None,
        floor: Optional[float] = None,
        ceiling: Optional[float] = None,
    ):
        self.rules = rules
        self.base_score = settings.base_score if base_score is None else base_score
        self.floor = settings.score_floor if floor is None else floor
        self.ceiling = settings.score_ceiling if ceiling is None else ceiling
        self._check_rule_attribution()

    def score(self, features: Mapping[str, float]) -> ScoreResult:
        contributions: list[FactorContribution] = []
        raw = self.base_score

        for rule in self.rules:
            outcome = rule.evaluate(features)
            if outcome is None:
                continue
            name, impact, explanation = outcome
            if impact == 0:
                continue
            raw += impact
            contributions.append(FactorContribution(
                name=name,
                category=rule.category,
                signed_impact=impact,
                direction=RiskDirection.POSITIVE if impact > 0 else RiskDirection.NEGATIVE,
                explanation_text=explanation,
                features=rule.features,
            ))

        raw = round(raw, 4)
        # Category follows the reported (rounded) score.
        overall = round(min(max(raw, self.floor), self.ceiling), 2)
        result = ScoreResult(
            base_score=self.base_score,
            raw_score=raw,
            overall_score=overall,
            category=categorize(overall),
            contributions=contributions,
        )
        self.verify(result)
        return result

    def verify(self, result: ScoreResult) -> None:
        """
        Additivity and exclusive attribution. Raises ScoringInvariantError.
        """
        expected = result.base_score + sum(c.signed_impact for c in result.contributions)
        if not math.isclose(expected, result.raw_score, abs_tol=1e-6):
            logger.error(
                "scoring_invariant_violated",
                expected=expected,
                raw_score=result.raw_score,
            )
            raise ScoringInvariantError(
                f"Additivity violated: base + contributions = {expected}, "
                f"model produced {result.raw_score}",
                expected=expected,
                actual=result.raw_score,
            )

        seen: set[str] = set()
        for c in result.contributions:
            overlap = seen.intersection(c.features)
            if overlap:
                raise ScoringInvariantError(
                    f"Feature(s) {sorted(overlap)} attributed to more than one factor"
                )
            seen.update(c.features)

        if not self.floor <= result.overall_score <= self.ceiling:
            raise ScoringInvariantError(
                f"Score {result.overall_score} outside [{self.floor}, {self.ceiling}]",
                actual=result.overall_score,
            )

    def _check_rule_attribution(self) -> None:
        owners: dict[str, str] = {}
        for rule in self.rules:
            for feat in rule.features:
                if feat in owners:
                    raise ScoringInvariantError(
                        f"Feature '{feat}' claimed by rules '{owners[feat]}' and '{rule.key}'"
                    )
                owners[feat] = rule.key
