"""
Record store — what the engine reads from and writes derived results to.

RecordStore is the contract; InMemoryRecordStore backs tests and single-process
use, SqlRecordStore persists through async SQLAlchemy.

Semantics shared by both:
- Analyses are versioned per user; saving inserts version N+1, never updates.
- Alerts are unique on (user_id, trigger_reason, new_score); saving a
  duplicate is a no-op that returns False.
- acknowledge_all marks every outstanding alert for a user in one step and
  never touches an alert twice.
"""

import asyncio
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional, Protocol

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from riskquote.alerting.schemas import RiskAlert
from riskquote.db.models import (
    ProfileSnapshotRow,
    RecomputeStatusRow,
    RiskAlertRow,
    RiskAnalysisRow,
)
from riskquote.schemas.analysis import RiskAnalysis, ScorePoint
from riskquote.schemas.profile import ProfileSnapshot
from riskquote.schemas.status import RecomputeStatus

logger = structlog.get_logger(__name__)


def _utc(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is None:
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RecordStore(Protocol):
    # ── Profiles ───────────────────────────────────────────────────────
    async def get_snapshot(self, user_id: str) -> Optional[ProfileSnapshot]: ...
    async def put_snapshot(self, snapshot: ProfileSnapshot) -> None: ...
    async def list_user_ids(self) -> list[str]: ...

    # ── Analyses ───────────────────────────────────────────────────────
    async def latest_analysis(self, user_id: str) -> Optional[RiskAnalysis]: ...
    async def save_analysis(self, analysis: RiskAnalysis) -> RiskAnalysis: ...
    async def score_history(self, user_id: str, limit: Optional[int] = None) -> list[ScorePoint]: ...

    # ── Alerts ─────────────────────────────────────────────────────────
    async def alert_exists(self, user_id: str, trigger_reason: str, new_score: float) -> bool: ...
    async def save_alert(self, alert: RiskAlert) -> bool: ...
    async def list_alerts(self, user_id: str, unacknowledged_only: bool = False) -> list[RiskAlert]: ...
    async def unacknowledged_count(self, user_id: str) -> int: ...
    async def acknowledge_all(self, user_id: str, at: Optional[datetime] = None) -> int: ...

    # ── Recompute status ───────────────────────────────────────────────
    async def record_status(self, status: RecomputeStatus) -> None: ...
    async def get_status(self, user_id: str) -> Optional[RecomputeStatus]: ...


# ══════════════════════════════════════════════════════════════════════════
# In-memory
# ══════════════════════════════════════════════════════════════════════════


class InMemoryRecordStore:
    """Keyed per-user store with replace-not-mutate semantics."""

    def __init__(self):
        self._snapshots: dict[str, ProfileSnapshot] = {}
        self._analyses: dict[str, list[RiskAnalysis]] = defaultdict(list)
        self._alerts: dict[str, list[RiskAlert]] = defaultdict(list)
        self._status: dict[str, RecomputeStatus] = {}
        self._lock = asyncio.Lock()

    async def get_snapshot(self, user_id: str) -> Optional[ProfileSnapshot]:
        return self._snapshots.get(user_id)

    async def put_snapshot(self, snapshot: ProfileSnapshot) -> None:
        if not snapshot.user_id:
            raise ValueError("Snapshot has no user_id")
        self._snapshots[snapshot.user_id] = snapshot

    async def list_user_ids(self) -> list[str]:
        return sorted(self._snapshots)

    async def latest_analysis(self, user_id: str) -> Optional[RiskAnalysis]:
        versions = self._analyses.get(user_id)
        return versions[-1] if versions else None

    async def save_analysis(self, analysis: RiskAnalysis) -> RiskAnalysis:
        async with self._lock:
            versions = self._analyses[analysis.user_id]
            stored = analysis.model_copy(update={"version": len(versions) + 1})
            versions.append(stored)
        return stored

    async def score_history(self, user_id: str, limit: Optional[int] = None) -> list[ScorePoint]:
        versions = self._analyses.get(user_id, [])
        if limit is not None:
            versions = versions[-limit:] if limit > 0 else []
        return [
            ScorePoint(generated_at=a.generated_at, overall_score=a.overall_score, version=a.version)
            for a in versions
        ]

    async def alert_exists(self, user_id: str, trigger_reason: str, new_score: float) -> bool:
        return any(
            a.dedup_key == (user_id, trigger_reason, new_score)
            for a in self._alerts.get(user_id, [])
        )

    async def save_alert(self, alert: RiskAlert) -> bool:
        async with self._lock:
            if await self.alert_exists(*alert.dedup_key):
                return False
            self._alerts[alert.user_id].append(alert)
        return True

    async def list_alerts(self, user_id: str, unacknowledged_only: bool = False) -> list[RiskAlert]:
        alerts = sorted(self._alerts.get(user_id, []), key=lambda a: a.created_at, reverse=True)
        if unacknowledged_only:
            alerts = [a for a in alerts if not a.acknowledged]
        return alerts

    async def unacknowledged_count(self, user_id: str) -> int:
        return sum(1 for a in self._alerts.get(user_id, []) if not a.acknowledged)

    async def acknowledge_all(self, user_id: str, at: Optional[datetime] = None) -> int:
        at = at or _now()
        async with self._lock:
            alerts = self._alerts.get(user_id, [])
            count = 0
            for i, alert in enumerate(alerts):
                if not alert.acknowledged:
                    alerts[i] = alert.model_copy(update={"acknowledged": True, "acknowledged_at": at})
                    count += 1
        return count

    async def record_status(self, status: RecomputeStatus) -> None:
        self._status[status.user_id] = status

    async def get_status(self, user_id: str) -> Optional[RecomputeStatus]:
        return self._status.get(user_id)


# ══════════════════════════════════════════════════════════════════════════
# SQL
# ══════════════════════════════════════════════════════════════════════════


class SqlRecordStore:
    """
    RecordStore over async SQLAlchemy. Each operation runs in its own
    transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ── Profiles ───────────────────────────────────────────────────────

    async def get_snapshot(self, user_id: str) -> Optional[ProfileSnapshot]:
        async with self._session_factory() as session:
            row = await session.get(ProfileSnapshotRow, user_id)
            return ProfileSnapshot.model_validate(row.payload) if row else None

    async def put_snapshot(self, snapshot: ProfileSnapshot) -> None:
        if not snapshot.user_id:
            raise ValueError("Snapshot has no user_id")
        async with self._session_factory() as session, session.begin():
            row = await session.get(ProfileSnapshotRow, snapshot.user_id)
            payload = snapshot.model_dump(mode="json")
            if row is None:
                session.add(ProfileSnapshotRow(
                    user_id=snapshot.user_id,
                    payload=payload,
                    captured_at=snapshot.captured_at,
                    updated_at=_now(),
                ))
            else:
                row.payload = payload
                row.captured_at = snapshot.captured_at
                row.updated_at = _now()

    async def list_user_ids(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProfileSnapshotRow.user_id).order_by(ProfileSnapshotRow.user_id)
            )
            return list(result.scalars().all())

    # ── Analyses ───────────────────────────────────────────────────────

    async def latest_analysis(self, user_id: str) -> Optional[RiskAnalysis]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RiskAnalysisRow)
                .where(RiskAnalysisRow.user_id == user_id)
                .order_by(RiskAnalysisRow.version.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return self._analysis_from_row(row) if row else None

    async def save_analysis(self, analysis: RiskAnalysis) -> RiskAnalysis:
        async with self._session_factory() as session, session.begin():
            current = await session.scalar(
                select(func.max(RiskAnalysisRow.version))
                .where(RiskAnalysisRow.user_id == analysis.user_id)
            )
            stored = analysis.model_copy(update={"version": (current or 0) + 1})
            session.add(RiskAnalysisRow(
                user_id=stored.user_id,
                version=stored.version,
                overall_score=stored.overall_score,
                category=stored.category.value,
                monthly_premium=stored.premium.monthly_amount,
                currency=stored.premium.currency,
                payload=stored.model_dump(mode="json"),
                generated_at=stored.generated_at,
            ))
        logger.debug("analysis_saved", user_id=stored.user_id, version=stored.version)
        return stored

    async def score_history(self, user_id: str, limit: Optional[int] = None) -> list[ScorePoint]:
        stmt = (
            select(RiskAnalysisRow.generated_at, RiskAnalysisRow.overall_score, RiskAnalysisRow.version)
            .where(RiskAnalysisRow.user_id == user_id)
            .order_by(RiskAnalysisRow.version.desc())
        )
        if limit is not None:
            stmt = stmt.limit(max(limit, 0))
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [
            ScorePoint(generated_at=_utc(generated_at), overall_score=score, version=version)
            for generated_at, score, version in reversed(rows)
        ]

    @staticmethod
    def _analysis_from_row(row: RiskAnalysisRow) -> RiskAnalysis:
        return RiskAnalysis.model_validate(row.payload)

    # ── Alerts ─────────────────────────────────────────────────────────

    async def alert_exists(self, user_id: str, trigger_reason: str, new_score: float) -> bool:
        async with self._session_factory() as session:
            found = await session.scalar(
                select(RiskAlertRow.alert_id).where(
                    RiskAlertRow.user_id == user_id,
                    RiskAlertRow.trigger_reason == trigger_reason,
                    RiskAlertRow.new_score == new_score,
                ).limit(1)
            )
            return found is not None

    async def save_alert(self, alert: RiskAlert) -> bool:
        """Insert unless the dedup key exists; the unique constraint decides races."""
        values = dict(
            alert_id=alert.alert_id,
            user_id=alert.user_id,
            trigger_reason=alert.trigger_reason.value,
            previous_score=alert.previous_score,
            new_score=alert.new_score,
            previous_category=alert.previous_category.value,
            new_category=alert.new_category.value,
            title=alert.title,
            message=alert.message,
            priority=alert.priority.value,
            created_at=alert.created_at,
            acknowledged=alert.acknowledged,
            acknowledged_at=alert.acknowledged_at,
        )
        inserted = True
        try:
            async with self._session_factory() as session, session.begin():
                session.add(RiskAlertRow(**values))
        except IntegrityError:
            inserted = False

        if not inserted:
            logger.info("alert_duplicate_ignored", user_id=alert.user_id, key=alert.dedup_key)
        return inserted

    async def list_alerts(self, user_id: str, unacknowledged_only: bool = False) -> list[RiskAlert]:
        stmt = select(RiskAlertRow).where(RiskAlertRow.user_id == user_id)
        if unacknowledged_only:
            stmt = stmt.where(RiskAlertRow.acknowledged.is_(False))
        stmt = stmt.order_by(RiskAlertRow.created_at.desc())
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [self._alert_from_row(r) for r in rows]

    async def unacknowledged_count(self, user_id: str) -> int:
        async with self._session_factory() as session:
            count = await session.scalar(
                select(func.count()).select_from(RiskAlertRow).where(
                    RiskAlertRow.user_id == user_id,
                    RiskAlertRow.acknowledged.is_(False),
                )
            )
            return int(count or 0)

    async def acknowledge_all(self, user_id: str, at: Optional[datetime] = None) -> int:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(RiskAlertRow)
                .where(
                    RiskAlertRow.user_id == user_id,
                    RiskAlertRow.acknowledged.is_(False),
                )
                .values(acknowledged=True, acknowledged_at=at or _now())
            )
            return result.rowcount or 0

    @staticmethod
    def _alert_from_row(row: RiskAlertRow) -> RiskAlert:
        return RiskAlert(
            alert_id=row.alert_id,
            user_id=row.user_id,
            trigger_reason=row.trigger_reason,
            previous_score=row.previous_score,
            new_score=row.new_score,
            previous_category=row.previous_category,
            new_category=row.new_category,
            title=row.title,
            message=row.message,
            priority=row.priority,
            created_at=_utc(row.created_at),
            acknowledged=row.acknowledged,
            acknowledged_at=_utc(row.acknowledged_at),
        )

    # ── Recompute status ───────────────────────────────────────────────

    async def record_status(self, status: RecomputeStatus) -> None:
        async with self._session_factory() as session, session.begin():
            row = await session.get(RecomputeStatusRow, status.user_id)
            if row is None:
                row = RecomputeStatusRow(user_id=status.user_id)
                session.add(row)
            row.outcome = status.outcome.value
            row.attempted_at = status.attempted_at
            row.last_success_at = status.last_success_at
            row.reason = status.reason
            row.message = status.message

    async def get_status(self, user_id: str) -> Optional[RecomputeStatus]:
        async with self._session_factory() as session:
            row = await session.get(RecomputeStatusRow, user_id)
            if row is None:
                return None
            return RecomputeStatus(
                user_id=row.user_id,
                outcome=row.outcome,
                attempted_at=_utc(row.attempted_at),
                last_success_at=_utc(row.last_success_at),
                reason=row.reason,
                message=row.message,
            )
