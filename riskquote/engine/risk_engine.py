"""
Risk Engine — orchestrates the scoring components for one profile.

    ProfileSnapshot
      → FeatureExtractor      (canonical features, defaults, age as of `as_of`)
      → ScoringModel          (base + additive contributions, invariants checked)
      → PremiumCalculator     (Decimal quote over closed rating tables)
      → ExplanationGenerator  (ranked factors, summary, fairness self-check)
      → TrendPredictor        (horizon projections from score history)
      → RecommendationEngine  (priority-ordered, capped)
      → RiskAnalysis

Pure apart from the clock: given the same snapshot, history, `as_of` and
`now`, the resulting analysis is identical.
"""

from collections.abc import Sequence
from datetime import date, datetime, timezone
from typing import Optional

import structlog

from riskquote.engine.explanation import ExplanationGenerator
from riskquote.engine.features import FeatureExtractor
from riskquote.engine.pricing import (
    PremiumCalculator,
    coverage_request_from_profile,
    wellness_discount_pct,
)
from riskquote.engine.recommendations import RecommendationEngine
from riskquote.engine.scoring import ScoringModel
from riskquote.engine.trend import TrendPredictor
from riskquote.schemas.analysis import RiskAnalysis, RiskDirection, ScorePoint
from riskquote.schemas.profile import ProfileSnapshot

logger = structlog.get_logger(__name__)


class RiskEngine:
    """
    Production risk analysis engine.

    Components are injectable so tests can swap thresholds or rules.
    """

    def __init__(
        self,
        extractor: Optional[FeatureExtractor] = None,
        model: Optional[ScoringModel] = None,
        calculator: Optional[PremiumCalculator] = None,
        explainer: Optional[ExplanationGenerator] = None,
        predictor: Optional[TrendPredictor] = None,
        recommender: Optional[RecommendationEngine] = None,
    ):
        self.extractor = extractor or FeatureExtractor()
        self.model = model or ScoringModel()
        self.calculator = calculator or PremiumCalculator()
        self.explainer = explainer or ExplanationGenerator(model=self.model)
        self.predictor = predictor or TrendPredictor()
        self.recommender = recommender or RecommendationEngine()

    def analyze(
        self,
        snapshot: ProfileSnapshot,
        history: Sequence[ScorePoint] = (),
        as_of: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> RiskAnalysis:
        """
        Run every component in order and assemble a RiskAnalysis.

        Raises:
            IncompleteProfileError: user id missing
            UnsupportedRatingAttributeError: pricing attribute outside its table
            ScoringInvariantError: model produced an inconsistent score
        """
        now = now or datetime.now(timezone.utc)
        as_of = as_of or now.date()

        features = self.extractor.extract(snapshot, as_of=as_of)
        result = self.model.score(features)

        tracking = snapshot.health_tracking
        request = coverage_request_from_profile(
            snapshot,
            hazardous_occupation=features["hazardous_occupation"] >= 1,
        )
        premium = self.calculator.quote(
            result.overall_score,
            request,
            wellness_discount=wellness_discount_pct(tracking.improvement_score if tracking else None),
        )

        explanation = self.explainer.explain(
            result.contributions, result.overall_score, result.category,
        )
        ranked = [f.contribution for f in explanation.factors]

        predictions = self.predictor.predict(
            result.overall_score,
            history=history,
            now=now,
            risk_drivers=[c.name for c in ranked if c.direction == RiskDirection.POSITIVE],
            protective_drivers=[c.name for c in ranked if c.direction == RiskDirection.NEGATIVE],
        )
        recommendations = self.recommender.recommend(features, result.contributions)

        analysis = RiskAnalysis(
            user_id=features.user_id,
            overall_score=result.overall_score,
            category=result.category,
            contributions=ranked,
            premium=premium,
            predictions=predictions,
            recommendations=recommendations,
            explanation=explanation,
            generated_at=now,
        )

        logger.info(
            "risk_analyzed",
            user_id=analysis.user_id,
            score=analysis.overall_score,
            category=analysis.category.value,
            monthly_premium=str(premium.monthly_amount),
            n_factors=len(ranked),
        )
        return analysis
