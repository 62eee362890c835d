"""
Alert Deduplication — one alert per (user_id, trigger_reason, new_score).

Recomputing an unchanged profile reproduces the same candidate alert; the
key makes that a no-op. Recently fired keys are cached in a bounded LRU in
front of the record store, whose uniqueness constraint is the final word.
"""

from collections import OrderedDict
from typing import TYPE_CHECKING, Optional

import structlog

from riskquote.alerting.schemas import RiskAlert
from riskquote.config import settings

if TYPE_CHECKING:
    from riskquote.db.store import RecordStore

logger = structlog.get_logger(__name__)

DedupKey = tuple[str, str, float]


class DedupManager:
    """
    Manages alert deduplication.

    Recent keys in memory for fast lookups, persistent via the store for
    durability. Evicted keys fall through to the store check.
    """

    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries or settings.dedup_cache_size
        self._recent: OrderedDict[DedupKey, None] = OrderedDict()

    async def should_suppress(
        self,
        alert: RiskAlert,
        store: "RecordStore",
    ) -> tuple[bool, str]:
        """
        Returns:
            (should_suppress: bool, reason: str)
        """
        key = alert.dedup_key
        if key in self._recent:
            self._recent.move_to_end(key)
            logger.debug("alert_suppressed_duplicate", user_id=alert.user_id, key=key)
            return True, f"Duplicate alert {key} already emitted"

        if await store.alert_exists(*key):
            self._remember(key)
            logger.debug("alert_suppressed_persisted", user_id=alert.user_id, key=key)
            return True, f"Duplicate alert {key} already persisted"

        return False, ""

    def record_fired(self, alert: RiskAlert) -> None:
        self._remember(alert.dedup_key)

    def _remember(self, key: DedupKey) -> None:
        self._recent[key] = None
        self._recent.move_to_end(key)
        while len(self._recent) > self.max_entries:
            self._recent.popitem(last=False)

    def reset(self) -> None:
        self._recent.clear()

    @property
    def size(self) -> int:
        return len(self._recent)
