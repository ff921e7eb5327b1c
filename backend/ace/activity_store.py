"""
Activity Store

Capped, ordered log of one user's activity records (newest last). The last record
stays open until the next one arrives, at which point its time spent is backfilled.
Persistence runs as background tasks: a failed write is logged and counted, and
never blocks in-memory tracking.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from .category_classifier import classify
from .models import ActivityRecord, RawActivityEvent, category_weight, utc_now
from .storage import StorageError
from .utils import ensure_utc, from_epoch_ms

DEFAULT_CAPACITY = 1000


def record_from_event(event: RawActivityEvent, now: Optional[datetime] = None) -> ActivityRecord:
    category = classify(url=event.url, title=event.title)
    return ActivityRecord(
        timestamp=from_epoch_ms(event.last_visit_time) or now or utc_now(),
        application=event.title or "browser",
        url=event.url,
        time_spent=0.0,
        category=category,
        productivity_score=category_weight(category.type),
    )


class ActivityStore:
    def __init__(self, user_id: str, storage=None, capacity: int = DEFAULT_CAPACITY,
                 logger: Optional[logging.Logger] = None):
        self.user_id = user_id
        self.storage = storage
        self.capacity = capacity
        self.logger = logger or logging.getLogger(__name__)
        self._records: List[ActivityRecord] = []
        self._pending: Set[asyncio.Task] = set()
        # latest write per record id; each write waits for the one before it
        self._last_write: Dict[str, asyncio.Task] = {}
        self.persist_failures = 0
        self.last_persist_error: Optional[BaseException] = None

    def __len__(self) -> int:
        return len(self._records)

    # ------------------------
    # Writes
    # ------------------------

    async def hydrate(self) -> int:
        """Load the most recent persisted records for this user."""
        if self.storage is None:
            return 0
        try:
            records = await self.storage.recent_activities(self.user_id, self.capacity)
        except StorageError as e:
            self.logger.error(f"Error fetching activities, starting empty: {e}")
            return 0

        self._records = sorted(records, key=lambda r: ensure_utc(r.timestamp))
        self.cap_and_evict()
        self.logger.info(f"Loaded {len(self._records)} activities for user {self.user_id}")
        return len(self._records)

    async def record(self, event: RawActivityEvent, now: Optional[datetime] = None) -> ActivityRecord:
        new_record = record_from_event(event, now)
        return self.append(new_record)

    def append(self, new_record: ActivityRecord) -> ActivityRecord:
        if self._records:
            previous = self._records[-1]
            elapsed = ensure_utc(new_record.timestamp) - ensure_utc(previous.timestamp)
            finalized = previous.model_copy(update={"time_spent": max(elapsed.total_seconds() * 1000, 0.0)})
            self._records[-1] = finalized
            self._persist(finalized)

        self._records.append(new_record)
        self._persist(new_record)

        if len(self._records) > self.capacity:
            self.cap_and_evict()

        self.logger.debug(f"New activity tracked: {new_record.application} ({new_record.category.type.value})")
        return new_record

    def cap_and_evict(self) -> int:
        """Drop the oldest records beyond capacity. Safe to run repeatedly."""
        overflow = len(self._records) - self.capacity
        if overflow <= 0:
            return 0
        del self._records[:overflow]
        self.logger.debug(f"Evicted {overflow} old activities")
        return overflow

    async def clear(self) -> None:
        self._records = []
        if self.storage is None:
            return
        try:
            deleted = await self.storage.delete_activities(self.user_id)
            self.logger.info(f"Cleared {deleted} persisted activities for user {self.user_id}")
        except StorageError as e:
            self.logger.error(f"Error clearing activities from storage: {e}")

    # ------------------------
    # Reads
    # ------------------------

    def all(self) -> List[ActivityRecord]:
        return list(self._records)

    def current(self) -> Optional[ActivityRecord]:
        return self._records[-1] if self._records else None

    def recent(self, window: timedelta, now: Optional[datetime] = None) -> List[ActivityRecord]:
        cutoff = (now or utc_now()) - window
        return [r for r in self._records if ensure_utc(r.timestamp) > cutoff]

    # ------------------------
    # Background persistence
    # ------------------------

    def _persist(self, record: ActivityRecord) -> None:
        if self.storage is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.warning(f"No running event loop, activity {record.id} kept in memory only")
            return
        previous = self._last_write.get(record.id)
        task = loop.create_task(self._write(record, previous))
        self._last_write[record.id] = task
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_persisted(t, record.id))

    async def _write(self, record: ActivityRecord, previous: Optional[asyncio.Task]) -> None:
        if previous is not None:
            # failures of the earlier write are reported by its own callback
            await asyncio.wait([previous])
        await self.storage.upsert_activity(self.user_id, record)

    def _on_persisted(self, task: asyncio.Task, record_id: str) -> None:
        self._pending.discard(task)
        if self._last_write.get(record_id) is task:
            del self._last_write[record_id]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.persist_failures += 1
            self.last_persist_error = error
            self.logger.error(f"Error syncing activity to storage: {error}")

    async def drain(self) -> None:
        """Wait for outstanding persistence tasks (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
