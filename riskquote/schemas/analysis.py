"""
Risk analysis records emitted by the engine.

All records are frozen: a recompute produces a new RiskAnalysis that
supersedes the old one rather than mutating it.
"""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class FactorCategory(StrEnum):
    DEMOGRAPHIC = "Demographic"
    HEALTH = "Health"
    LIFESTYLE = "Lifestyle"
    FINANCIAL = "Financial"


class RiskDirection(StrEnum):
    POSITIVE = "positive"       # Raises risk
    NEGATIVE = "negative"       # Lowers risk


class RiskCategory(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class FairnessStatus(StrEnum):
    PASS = "PASS"
    FAIL = "FAIL"


class TrendLabel(StrEnum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class FactorContribution(_Frozen):
    """One additive term of the overall score."""
    name: str                               # e.g. "Non-smoker"
    category: FactorCategory
    signed_impact: float                    # Points added to the base score
    direction: RiskDirection
    explanation_text: str
    features: tuple[str, ...] = ()          # Features attributed to this factor


class PremiumQuote(_Frozen):
    monthly_amount: Decimal
    currency: str
    coverage_amount: int
    term_years: int
    applied_multipliers: dict[str, Decimal] = Field(default_factory=dict)


class Prediction(_Frozen):
    timeframe_label: str                    # "3 months"
    horizon_months: int
    predicted_score: float
    confidence_percent: float
    trend: TrendLabel = TrendLabel.STABLE
    drivers: list[str] = Field(default_factory=list)


class FairnessMetricResult(_Frozen):
    name: str
    value: float
    threshold: float
    status: FairnessStatus


class FairnessReport(_Frozen):
    metrics: list[FairnessMetricResult]
    reference_population_size: int

    @property
    def passed(self) -> bool:
        return all(m.status == FairnessStatus.PASS for m in self.metrics)


class RankedFactor(_Frozen):
    rank: int
    contribution: FactorContribution
    impact_label: str                       # "+25 pts" / "-6 pts"
    share_pct: float                        # Share of total absolute impact


class Explanation(_Frozen):
    factors: list[RankedFactor]
    primary_driver: str
    summary: str
    fairness: FairnessReport


class RiskAnalysis(_Frozen):
    """
    Current risk view for one user. Superseded on every recompute.
    """
    user_id: str
    version: int = 0
    overall_score: float
    category: RiskCategory
    contributions: list[FactorContribution]
    premium: PremiumQuote
    predictions: list[Prediction]
    recommendations: list[str]
    explanation: Explanation
    generated_at: datetime

    def fingerprint(self) -> str:
        """Serialized content excluding version and timestamp."""
        return self.model_dump_json(exclude={"generated_at", "version"})


class ScorePoint(_Frozen):
    """One historical score, used as trend-prediction history."""
    generated_at: datetime
    overall_score: float
    version: int = 0
