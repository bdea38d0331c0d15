"""In-process read-model cache for weekly schedules."""

import logging
import time
from datetime import date
from typing import Any, Callable, Dict, Optional, Tuple

from pickleplus.core.settings import settings
from pickleplus.utils.timezone import week_start

logger = logging.getLogger(__name__)

CacheKey = Tuple[int, date]
# (class count, sum of row versions) for one facility week, read from the database
Fingerprint = Tuple[int, int]


class ScheduleCache:
    """Week views keyed by ``(facility_id, week_start)``.

    Each entry remembers the database fingerprint it was computed under and
    is served only while the database still reports that fingerprint. Writes
    made by other processes (the auto-cancel worker, other API workers) bump
    class row versions, so they invalidate entries here too. Local writes
    also drop their key right away through ``invalidate_class``.
    """

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[CacheKey, Tuple[float, Fingerprint, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CacheKey, fingerprint: Fingerprint) -> Optional[Any]:
        if self.ttl_seconds <= 0:
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, stored_fingerprint, view = entry
        if stored_fingerprint != fingerprint or self.clock() - stored_at > self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return view

    def store(self, key: CacheKey, view: Any, fingerprint: Fingerprint) -> None:
        """Cache ``view``; ``fingerprint`` must be read before the view was built."""
        if self.ttl_seconds <= 0:
            return
        now = self.clock()
        self._sweep(now)
        self._entries[key] = (now, fingerprint, view)

    def invalidate(self, key: CacheKey) -> None:
        self._entries.pop(key, None)

    def invalidate_class(self, facility_id: int, class_date: date) -> None:
        """Drop the cached week that contains a mutated class."""
        key = (facility_id, week_start(class_date))
        self.invalidate(key)
        logger.debug(f"Invalidated schedule cache for facility {facility_id}, week {key[1]}")

    def clear(self) -> None:
        self._entries.clear()

    def _sweep(self, now: float) -> None:
        expired = [
            key for key, (stored_at, _, _) in self._entries.items()
            if now - stored_at > self.ttl_seconds
        ]
        for key in expired:
            del self._entries[key]


schedule_cache = ScheduleCache(ttl_seconds=settings.schedule_cache_ttl_seconds)
