"""Recency ledger: bounded, thread-safe history of used paths.

Writers serialize on a lock and publish a fresh mapping on every change;
readers use whichever mapping is current without locking, so a lookup during
scoring always sees a consistent snapshot and never waits on a writer.
"""

import math
import threading
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from app.recent.models import RecencyEntry

# Boost is FREQUENCY_WEIGHT * log1p(use_count) decayed by age, capped at MAX_BOOST.
FREQUENCY_WEIGHT = 4.0
HALF_LIFE_HOURS = 24.0
MAX_BOOST = 20.0


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RecencyLedger:
    """Process-wide record of recently used roots and paths.

    Args:
        capacity: Maximum number of entries kept; least recently used are evicted
        clock: Returns the current time (injectable for tests)
    """

    def __init__(self, capacity: int = 50, clock: Callable[[], datetime] = _utcnow) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, RecencyEntry] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def get(self, path: str) -> RecencyEntry | None:
        return self._entries.get(path)

    def record_use(self, path: str) -> RecencyEntry:
        """Record one use of path, creating its entry on first use.

        Returns:
            The updated entry
        """
        with self._lock:
            entries = dict(self._entries)
            existing = entries.pop(path, None)
            if existing is None:
                entry = RecencyEntry(path=path, last_used=self._clock(), use_count=1)
            else:
                entry = existing.model_copy(
                    update={"last_used": self._clock(), "use_count": existing.use_count + 1}
                )
            entries[path] = entry
            self._entries = self._evict(entries)
        return entry

    def boost_for(self, path: str) -> float:
        """Ranking boost for path; 0.0 if it has never been used."""
        entry = self._entries.get(path)
        if entry is None:
            return 0.0
        return recency_boost(entry.use_count, self._clock() - entry.last_used)

    def list_recent(self, limit: int | None = None) -> list[RecencyEntry]:
        """Entries ordered by last use, most recent first."""
        entries = sorted(
            self._entries.values(), key=lambda e: (e.last_used, e.path), reverse=True
        )
        return entries if limit is None else entries[: max(0, limit)]

    def load(self, entries: Iterable[RecencyEntry]) -> None:
        """Merge persisted entries into the ledger.

        Duplicate paths keep the latest last_used and the highest use_count.
        """
        with self._lock:
            merged = dict(self._entries)
            for entry in entries:
                current = merged.get(entry.path)
                if current is not None:
                    entry = RecencyEntry(
                        path=entry.path,
                        last_used=max(current.last_used, entry.last_used),
                        use_count=max(current.use_count, entry.use_count),
                    )
                merged[entry.path] = entry
            self._entries = self._evict(merged)

    def export(self) -> list[RecencyEntry]:
        """Current entries for persistence, most recent first."""
        return self.list_recent()

    def _evict(self, entries: dict[str, RecencyEntry]) -> dict[str, RecencyEntry]:
        if len(entries) <= self._capacity:
            return entries
        # Dict order is use order, so equal timestamps evict the older use first
        ranked = sorted(
            enumerate(entries.values()), key=lambda item: (item[1].last_used, item[0]), reverse=True
        )
        keep = {entry.path for _, entry in ranked[: self._capacity]}
        return {path: entry for path, entry in entries.items() if path in keep}


def recency_boost(use_count: int, age: timedelta) -> float:
    """Bounded boost from use frequency and time since last use.

    Non-decreasing in use_count and non-increasing in age.

    Args:
        use_count: Number of recorded uses (>= 1)
        age: timedelta since last use
    """
    hours = max(0.0, age.total_seconds() / 3600.0)
    decay = 1.0 / (1.0 + hours / HALF_LIFE_HOURS)
    return min(MAX_BOOST, FREQUENCY_WEIGHT * math.log1p(use_count) * decay)
