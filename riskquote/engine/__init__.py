"""
RiskQuote Scoring Engine — deterministic, explainable, additive.

Components:
- features: Profile → canonical numeric FeatureVector (with documented defaults)
- scoring: Additive rule model (base score + signed factor contributions)
- pricing: Score + coverage + rating multipliers → monthly premium
- explanation: Ranked attribution + fairness self-check
- trend: Damped linear score projection with decaying confidence
- recommendations: Threshold-gated, priority-ordered suggestions
- risk_engine: Orchestrates all of the above into one RiskAnalysis
"""
