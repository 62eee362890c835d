"""
Explanation Generator.

Ranks factor contributions and answers "WHY is this user at this score?":
- Rank by absolute impact, ties broken Health > Lifestyle > Demographic > Financial
- Impact label and share of total absolute impact per factor
- One-line summary naming the primary driver
- Fairness self-check of the scoring model over a reference population

The generator never drops or rewrites a contribution; it only sorts and
annotates.
"""

import itertools
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Optional

import structlog

from riskquote.config import settings
from riskquote.engine.features import FEATURE_DEFAULTS
from riskquote.engine.scoring import ScoringModel, rank_key
from riskquote.schemas.analysis import (
    Explanation,
    FactorContribution,
    FairnessMetricResult,
    FairnessReport,
    FairnessStatus,
    RankedFactor,
    RiskCategory,
)

logger = structlog.get_logger(__name__)

# ── Reference population ─────────────────────────────────────────────────

# Protected attribute the model must be indifferent to. It is carried into
# every reference vector so a rule that starts reading it shows up as a
# parity failure.
PROTECTED_ATTRIBUTE = "gender_code"
PROTECTED_GROUPS: dict[str, float] = {"female": 0.0, "male": 1.0}

REFERENCE_GRID: dict[str, tuple[float, ...]] = {
    "smoking_status": (0.0, 1.0, 2.0),
    "bmi": (22.0, 27.0, 32.0),
    "exercise_frequency": (0.5, 3.5, 5.5),
    "age": (28.0, 45.0, 60.0),
    "existing_conditions_count": (0.0, 1.0),
}

# Scores at or above this count as a "high risk" decision.
DECISION_THRESHOLD = 50.0


def reference_label(features: Mapping[str, float]) -> int:
    """Ground-truth stand-in: two or more adverse indicators = adverse outcome."""
    adverse = sum((
        features["smoking_status"] >= 2,
        features["bmi"] >= 30,
        features["existing_conditions_count"] >= 1,
        features["age"] >= 50,
        features["exercise_frequency"] < 1,
    ))
    return 1 if adverse >= 2 else 0


def build_reference_population() -> list[tuple[str, dict[str, float]]]:
    """Deterministic (group, features) pairs, identical grids per group."""
    names = list(REFERENCE_GRID)
    population: list[tuple[str, dict[str, float]]] = []
    for group, code in PROTECTED_GROUPS.items():
        for combo in itertools.product(*(REFERENCE_GRID[n] for n in names)):
            vector = dict(FEATURE_DEFAULTS)
            vector.update(zip(names, combo))
            vector[PROTECTED_ATTRIBUTE] = code
            population.append((group, vector))
    return population


@dataclass
class _GroupStats:
    total: int = 0
    predicted_positive: int = 0
    true_positives: int = 0
    false_positives: int = 0
    actual_positive: int = 0
    score_sum: float = 0.0

    @property
    def positive_rate(self) -> float:
        return self.predicted_positive / self.total if self.total else 0.0

    @property
    def tpr(self) -> float:
        return self.true_positives / self.actual_positive if self.actual_positive else 0.0

    @property
    def fpr(self) -> float:
        negatives = self.total - self.actual_positive
        return self.false_positives / negatives if negatives else 0.0

    @property
    def calibration_gap(self) -> float:
        """Mean predicted probability minus observed adverse rate."""
        if not self.total:
            return 0.0
        return self.score_sum / 100.0 / self.total - self.actual_positive / self.total


class FairnessChecker:
    """
    Evaluates demographic parity, equalized odds and calibration deltas of a
    scoring model across the protected groups of the reference population.
    """

    def __init__(
        self,
        demographic_parity_max: Optional[float] = None,
        equalized_odds_max: Optional[float] = None,
        calibration_max: Optional[float] = None,
    ):
        self.thresholds = {
            "demographic_parity_delta": (
                settings.fairness_demographic_parity_max
                if demographic_parity_max is None else demographic_parity_max
            ),
            "equalized_odds_delta": (
                settings.fairness_equalized_odds_max
                if equalized_odds_max is None else equalized_odds_max
            ),
            "calibration_delta": (
                settings.fairness_calibration_max
                if calibration_max is None else calibration_max
            ),
        }

    def evaluate(self, model: ScoringModel) -> FairnessReport:
        population = build_reference_population()
        stats: dict[str, _GroupStats] = {g: _GroupStats() for g in PROTECTED_GROUPS}

        for group, vector in population:
            score = model.score(vector).overall_score
            predicted = score >= DECISION_THRESHOLD
            actual = reference_label(vector) == 1
            s = stats[group]
            s.total += 1
            s.score_sum += score
            s.predicted_positive += predicted
            s.actual_positive += actual
            s.true_positives += predicted and actual
            s.false_positives += predicted and not actual

        groups = list(stats.values())
        measured = {
            "demographic_parity_delta": _spread(g.positive_rate for g in groups),
            "equalized_odds_delta": max(
                _spread(g.tpr for g in groups),
                _spread(g.fpr for g in groups),
            ),
            "calibration_delta": _spread(g.calibration_gap for g in groups),
        }

        metrics = [
            FairnessMetricResult(
                name=name,
                value=round(value, 4),
                threshold=self.thresholds[name],
                status=FairnessStatus.PASS if value <= self.thresholds[name] else FairnessStatus.FAIL,
            )
            for name, value in measured.items()
        ]
        report = FairnessReport(metrics=metrics, reference_population_size=len(population))

        if not report.passed:
            logger.warning(
                "fairness_check_failed",
                failed=[m.name for m in metrics if m.status == FairnessStatus.FAIL],
            )
        return report


def _spread(values) -> float:
    values = list(values)
    return max(values) - min(values) if values else 0.0


def impact_label(impact: float) -> str:
    return f"{impact:+g} pts"


class ExplanationGenerator:
    """
    Contributions → ranked, labelled Explanation.
    """

    def __init__(
        self,
        model: Optional[ScoringModel] = None,
        checker: Optional[FairnessChecker] = None,
    ):
        self.model = model or ScoringModel()
        self.checker = checker or FairnessChecker()
        self._fairness: Optional[FairnessReport] = None

    @property
    def fairness(self) -> FairnessReport:
        # The model is fixed for the generator's lifetime.
        if self._fairness is None:
            self._fairness = self.checker.evaluate(self.model)
        return self._fairness

    def rank(self, contributions: Sequence[FactorContribution]) -> list[FactorContribution]:
        return sorted(contributions, key=rank_key)

    def explain(
        self,
        contributions: Sequence[FactorContribution],
        overall_score: float,
        category: RiskCategory,
    ) -> Explanation:
        ranked = self.rank(contributions)
        total_abs = sum(abs(c.signed_impact) for c in ranked)

        factors = [
            RankedFactor(
                rank=i,
                contribution=c,
                impact_label=impact_label(c.signed_impact),
                share_pct=round(abs(c.signed_impact) / total_abs * 100, 1) if total_abs else 0.0,
            )
            for i, c in enumerate(ranked, start=1)
        ]

        primary_driver = ranked[0].name if ranked else "Base score"

        if not ranked:
            summary = (
                f"{category.value.upper()} RISK ({overall_score:.0f}/100): "
                f"No individual factors beyond the base score."
            )
        elif category == RiskCategory.HIGH:
            summary = f"HIGH RISK ({overall_score:.0f}/100): Primary driver is {primary_driver}."
        elif category == RiskCategory.MEDIUM:
            summary = f"MEDIUM RISK ({overall_score:.0f}/100): Key factor is {primary_driver}."
        else:
            summary = f"LOW RISK ({overall_score:.0f}/100): Strongest factor is {primary_driver}."

        return Explanation(
            factors=factors,
            primary_driver=primary_driver,
            summary=summary,
            fairness=self.fairness,
        )
