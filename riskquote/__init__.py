"""
RiskQuote — Risk Scoring & Premium Pricing Engine.

Architecture:
    riskquote/
    ├── api/             # FastAPI routers (consumption + trigger surface)
    ├── db/              # SQLAlchemy models, engine, record stores
    ├── middleware/      # Error handling, request context
    ├── schemas/         # Pydantic records (profile, analysis)
    ├── services/        # Health-tracking summaries, periodic scheduler
    ├── engine/          # Features, scoring, pricing, explanation, trend, recommendations
    ├── alerting/        # Significant-change alerts, dedup, delivery channels
    └── pipeline/        # Event-driven recompute state machine

Module Boundaries:
    - The engine reads ProfileSnapshots, never writes them
    - Every score is additive: base + sum(contributions)
    - A RiskAnalysis is replaced, never mutated
    - Alerts fire only on significant change and are deduplicated

Data Flow:
    Change event → Recompute Pipeline → Features → Scoring
    → {Pricing, Explanation, Trend, Recommendations} → Store → Diff → Alert

Version: 1.0.0
"""

__version__ = "1.0.0"
