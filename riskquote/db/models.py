"""
RiskQuote SQLAlchemy Models.

Record payloads are JSON documents: JSONB on PostgreSQL (prod), JSON on
SQLite (dev/tests).
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from riskquote.db.engine import Base

Payload = JSON().with_variant(JSONB(), "postgresql")


# ──────────────────────────────────────────────────────────────────────────────
# Inputs (written by the ingestion collaborator)
# ──────────────────────────────────────────────────────────────────────────────


class ProfileSnapshotRow(Base):
    """Latest ProfileSnapshot per user."""

    __tablename__ = "profile_snapshots"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    payload: Mapped[dict] = mapped_column(Payload, nullable=False)
    captured_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ──────────────────────────────────────────────────────────────────────────────
# Derived records
# ──────────────────────────────────────────────────────────────────────────────


class RiskAnalysisRow(Base):
    """
    One version of a user's RiskAnalysis. Every recompute inserts a new
    version; the highest version is current.
    """

    __tablename__ = "risk_analyses"
    __table_args__ = (
        UniqueConstraint("user_id", "version", name="uq_risk_analysis_version"),
        Index("ix_risk_analyses_user_generated", "user_id", "generated_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    overall_score: Mapped[float] = mapped_column(Float, nullable=False)
    category: Mapped[str] = mapped_column(String(10), nullable=False)
    monthly_premium: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payload: Mapped[dict] = mapped_column(Payload, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class RiskAlertRow(Base):
    """Score-change alert. Only `acknowledged`/`acknowledged_at` ever change."""

    __tablename__ = "risk_alerts"
    __table_args__ = (
        UniqueConstraint("user_id", "trigger_reason", "new_score", name="uq_risk_alert_dedup"),
        Index("ix_risk_alerts_user_ack", "user_id", "acknowledged"),
    )

    alert_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    trigger_reason: Mapped[str] = mapped_column(String(32), nullable=False)
    previous_score: Mapped[float] = mapped_column(Float, nullable=False)
    new_score: Mapped[float] = mapped_column(Float, nullable=False)
    previous_category: Mapped[str] = mapped_column(String(10), nullable=False)
    new_category: Mapped[str] = mapped_column(String(10), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class RecomputeStatusRow(Base):
    """Outcome of the last recompute attempt per user."""

    __tablename__ = "recompute_status"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    outcome: Mapped[str] = mapped_column(String(16), nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_success_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    reason: Mapped[Optional[str]] = mapped_column(String(64))
    message: Mapped[Optional[str]] = mapped_column(Text)
