"""
Recompute Scheduler — periodic safety-net sweep.

Change notifications can be missed; every `periodic_recompute_minutes` the
scheduler triggers a `periodic` recompute for every user with a stored
profile. Triggers go through the pipeline, so a sweep that overlaps an
in-flight recompute is coalesced rather than run twice.
"""

import asyncio
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from riskquote.config import settings
from riskquote.db.store import RecordStore
from riskquote.pipeline.recompute import RecomputePipeline
from riskquote.schemas.events import ChangedEntity, ChangeEvent

logger = structlog.get_logger(__name__)


class RecomputeScheduler:
    """
    Background scheduler for the periodic recompute sweep.
    """

    def __init__(
        self,
        pipeline: RecomputePipeline,
        store: RecordStore,
        interval_minutes: Optional[int] = None,
    ):
        self.pipeline = pipeline
        self.store = store
        self.interval_minutes = interval_minutes or settings.periodic_recompute_minutes
        self.scheduler = AsyncIOScheduler()

    def start(self):
        """Register and start the sweep job."""
        self.scheduler.add_job(
            self.run_sweep,
            IntervalTrigger(minutes=self.interval_minutes),
            id="periodic_recompute",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("recompute_scheduler_started", interval_minutes=self.interval_minutes)

    def stop(self):
        """Stop the scheduler without waiting for a running sweep."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("recompute_scheduler_stopped")

    async def run_sweep(self) -> dict[str, int]:
        """
        Recompute every user with a stored profile.

        Error isolation: one user's failure never stops the sweep.
        """
        user_ids = await self.store.list_user_ids()
        logger.info("periodic_sweep_started", users=len(user_ids))

        futures = [
            self.pipeline.submit(ChangeEvent(user_id=uid, changed_entity=ChangedEntity.PERIODIC))
            for uid in user_ids
        ]
        # Shielded: cancelling the sweep must not settle the pipeline's futures.
        results = await asyncio.gather(*(asyncio.shield(f) for f in futures), return_exceptions=True)

        failed = 0
        for uid, result in zip(user_ids, results):
            if isinstance(result, Exception):
                failed += 1
                logger.error("periodic_recompute_failed", user_id=uid, error=str(result))

        summary = {"users": len(user_ids), "succeeded": len(user_ids) - failed, "failed": failed}
        logger.info("periodic_sweep_completed", **summary)
        return summary
