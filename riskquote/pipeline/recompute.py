"""
Recompute Pipeline — keeps each user's RiskAnalysis fresh.

State machine per user:

    Idle → Computing → Comparing → (AlertEmitted | NoAlert) → Idle

Concurrency:
- At most one recompute in flight per user (one drain task per user).
- Triggers arriving while a recompute is in flight are coalesced into a
  single follow-up run that starts right after the current one.
- Different users are independent and run in parallel.
- A user's slot exists only while a drain task is running.

Persistence order:
- A fired alert is persisted and dispatched before the new analysis becomes
  current. If saving the analysis fails, the next run compares against the
  same previous analysis, rebuilds the same alert and finds it deduplicated.

Failure handling:
- RecomputeError (incomplete profile, unsupported rating attribute):
  status recorded as failed, previous analysis untouched, error raised to
  the caller awaiting that run.
- ScoringInvariantError: aborts without persisting anything but the status.
- Any other error (store unavailable): status recorded as failed, error
  raised to the caller.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Optional

import structlog

from riskquote.alerting.channels import AlertDispatcher
from riskquote.alerting.dedup import DedupManager
from riskquote.alerting.engine import AlertEngine
from riskquote.alerting.schemas import RiskAlert
from riskquote.config import settings
from riskquote.db.store import RecordStore
from riskquote.engine.risk_engine import RiskEngine
from riskquote.errors import IncompleteProfileError, RecomputeError, ScoringInvariantError
from riskquote.schemas.analysis import RiskAnalysis
from riskquote.schemas.events import ChangedEntity, ChangeEvent
from riskquote.schemas.status import RecomputeOutcome, RecomputeStatus

logger = structlog.get_logger(__name__)


class PipelineState(StrEnum):
    IDLE = "idle"
    COMPUTING = "computing"
    COMPARING = "comparing"
    ALERT_EMITTED = "alert_emitted"
    NO_ALERT = "no_alert"


@dataclass(frozen=True)
class RecomputeResult:
    user_id: str
    trigger: ChangedEntity
    analysis: RiskAnalysis
    final_state: PipelineState          # ALERT_EMITTED or NO_ALERT
    alert: Optional[RiskAlert] = None
    delivery: dict = field(default_factory=dict)


@dataclass
class _UserSlot:
    state: PipelineState = PipelineState.IDLE
    task: Optional[asyncio.Task] = None
    # Follow-up run shared by every trigger that arrived mid-flight
    pending: Optional[asyncio.Future] = None
    pending_trigger: Optional[ChangedEntity] = None
    runs: int = 0


def _consume_exception(future: asyncio.Future) -> None:
    # Fire-and-forget submitters never await; keep asyncio from warning.
    if not future.cancelled():
        future.exception()


def _resolve(future: asyncio.Future, result=None, exc: Optional[BaseException] = None) -> None:
    # A waiter that timed out or was cancelled has already settled the future.
    if future.done():
        return
    if exc is not None:
        future.set_exception(exc)
    else:
        future.set_result(result)


class RecomputePipeline:
    """
    Event-driven recompute with per-user serialization and coalescing.
    """

    def __init__(
        self,
        store: RecordStore,
        engine: Optional[RiskEngine] = None,
        alert_engine: Optional[AlertEngine] = None,
        dedup: Optional[DedupManager] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        clock: Optional[Callable[[], datetime]] = None,
        history_window: Optional[int] = None,
    ):
        self.store = store
        self.engine = engine or RiskEngine()
        self.alert_engine = alert_engine or AlertEngine()
        self.dedup = dedup or DedupManager()
        self.dispatcher = dispatcher
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.history_window = settings.history_window if history_window is None else history_window
        self._slots: dict[str, _UserSlot] = {}

    # ── Public API ─────────────────────────────────────────────────────

    def submit(self, event: ChangeEvent) -> asyncio.Future:
        """
        Schedule a recompute for event.user_id and return the future of the
        run that will cover it. Does not wait.
        """
        slot = self._slots.get(event.user_id)

        if slot is None:
            slot = self._slots[event.user_id] = _UserSlot()
            future = asyncio.get_running_loop().create_future()
            future.add_done_callback(_consume_exception)
            slot.task = asyncio.create_task(
                self._drain(event.user_id, slot, future, event.changed_entity),
                name=f"recompute:{event.user_id}",
            )
            logger.debug("recompute_scheduled", user_id=event.user_id, trigger=event.changed_entity.value)
            return future

        if slot.pending is None:
            slot.pending = asyncio.get_running_loop().create_future()
            slot.pending.add_done_callback(_consume_exception)
        slot.pending_trigger = event.changed_entity
        logger.debug("recompute_coalesced", user_id=event.user_id, trigger=event.changed_entity.value)
        return slot.pending

    async def trigger(self, event: ChangeEvent) -> RecomputeResult:
        """Schedule a recompute and wait for the run that covers it."""
        return await asyncio.shield(self.submit(event))

    async def refresh(self, user_id: str) -> RecomputeResult:
        """User-initiated refresh."""
        return await self.trigger(ChangeEvent(user_id=user_id, changed_entity=ChangedEntity.REFRESH))

    def state(self, user_id: str) -> PipelineState:
        slot = self._slots.get(user_id)
        return slot.state if slot else PipelineState.IDLE

    def is_busy(self, user_id: str) -> bool:
        return user_id in self._slots

    @property
    def active_users(self) -> int:
        return len(self._slots)

    async def wait_idle(self) -> None:
        """Wait until no recompute is in flight for any user."""
        while True:
            tasks = [s.task for s in self._slots.values() if s.task is not None]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    # ── Drain loop ─────────────────────────────────────────────────────

    async def _drain(
        self,
        user_id: str,
        slot: _UserSlot,
        future: asyncio.Future,
        trigger: ChangedEntity,
    ) -> None:
        try:
            while True:
                try:
                    result = await self._run_once(user_id, slot, trigger)
                except Exception as exc:
                    _resolve(future, exc=exc)
                else:
                    _resolve(future, result)

                if slot.pending is None:
                    break
                future, slot.pending = slot.pending, None
                trigger = slot.pending_trigger or trigger
                slot.pending_trigger = None
        finally:
            if slot.pending is not None:
                slot.pending.cancel()
            if self._slots.get(user_id) is slot:
                del self._slots[user_id]
            slot.task = None
            slot.state = PipelineState.IDLE

    async def _run_once(
        self,
        user_id: str,
        slot: _UserSlot,
        trigger: ChangedEntity,
    ) -> RecomputeResult:
        slot.runs += 1
        slot.state = PipelineState.COMPUTING
        now = self.clock()
        log = logger.bind(user_id=user_id, trigger=trigger.value, run=slot.runs)

        try:
            snapshot = await self.store.get_snapshot(user_id)
            if snapshot is None:
                raise IncompleteProfileError("profile_snapshot")

            previous = await self.store.latest_analysis(user_id)
            history = await self.store.score_history(user_id, limit=self.history_window)
            candidate = self.engine.analyze(snapshot, history=history, as_of=now.date(), now=now)

            slot.state = PipelineState.COMPARING
            emitted, delivery = await self._emit_alert(previous, candidate, now, log)
            stored = await self.store.save_analysis(candidate)
        except RecomputeError as exc:
            log.warning("recompute_failed", reason=exc.reason, error=str(exc))
            await self._record_failure(user_id, now, RecomputeOutcome.FAILED, exc)
            raise
        except ScoringInvariantError as exc:
            log.error("recompute_aborted", reason=exc.reason, error=str(exc))
            await self._record_failure(user_id, now, RecomputeOutcome.ABORTED, exc)
            raise
        except Exception as exc:
            log.error("recompute_error", error=str(exc), error_type=type(exc).__name__)
            await self._record_failure(user_id, now, RecomputeOutcome.FAILED, exc)
            raise

        slot.state = PipelineState.ALERT_EMITTED if emitted else PipelineState.NO_ALERT
        await self.store.record_status(RecomputeStatus(
            user_id=user_id,
            outcome=RecomputeOutcome.SUCCEEDED,
            attempted_at=now,
            last_success_at=now,
        ))

        log.info(
            "recompute_completed",
            version=stored.version,
            score=stored.overall_score,
            previous_score=previous.overall_score if previous else None,
            state=slot.state.value,
        )
        return RecomputeResult(
            user_id=user_id,
            trigger=trigger,
            analysis=stored,
            final_state=slot.state,
            alert=emitted,
            delivery=delivery,
        )

    async def _emit_alert(
        self,
        previous: Optional[RiskAnalysis],
        candidate: RiskAnalysis,
        now: datetime,
        log,
    ) -> tuple[Optional[RiskAlert], dict]:
        alert = self.alert_engine.evaluate(previous, candidate, now=now)
        if alert is None:
            return None, {}

        suppressed, reason = await self.dedup.should_suppress(alert, self.store)
        if suppressed:
            log.info("alert_suppressed", reason=reason)
            return None, {}
        if not await self.store.save_alert(alert):
            log.info("alert_suppressed", reason="dedup key already stored")
            return None, {}

        self.dedup.record_fired(alert)
        delivery: dict = {}
        if self.dispatcher is not None:
            delivery = await self.dispatcher.dispatch(alert)
        return alert, delivery

    async def _record_failure(
        self,
        user_id: str,
        now: datetime,
        outcome: RecomputeOutcome,
        exc: Exception,
    ) -> None:
        previous = await self.store.get_status(user_id)
        await self.store.record_status(RecomputeStatus(
            user_id=user_id,
            outcome=outcome,
            attempted_at=now,
            last_success_at=previous.last_success_at if previous else None,
            reason=getattr(exc, "reason", type(exc).__name__),
            message=str(exc),
        ))
