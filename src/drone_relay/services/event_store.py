"""
Last-value cache for relayed events.

Keeps the most recent event per correlation key (drone serial number, order
id). Backed by ``cachetools.TTLCache`` so the cache is bounded both in size
and in age: the oldest entries are evicted once ``maxsize`` is reached and
entries expire ``ttl`` seconds after their last write.

Two concurrent writes for the same key resolve as last-write-wins. That is
acceptable for the demo but nothing here detects the conflict.
"""
import itertools
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from cachetools import Cache, TTLCache

from ..models.events import Event, utc_now

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    event: Event
    stored_at: datetime
    # Write sequence, breaks ties between entries stored in the same instant
    seq: int = field(default=0, compare=False)


class LastValueCache:
    """
    In-memory mapping from correlation key to the last known event.

    All operations are total: reading an unknown or expired key returns None.
    """

    def __init__(
        self,
        maxsize: int = 10000,
        ttl: float = 3600.0,
        clock: Optional[Callable[[], datetime]] = None,
        timer: Optional[Callable[[], float]] = None,
        name: str = "events",
    ):
        self.name = name
        self._clock = clock or utc_now
        self._cache: TTLCache = TTLCache(
            maxsize=maxsize,
            ttl=ttl,
            timer=timer or time.monotonic,
        )
        self._seq = itertools.count(1)
        self._writes = 0

    def put(self, key: str, event: Event, stored_at: Optional[datetime] = None) -> CacheEntry:
        """Store ``event`` under ``key``, replacing any previous entry."""
        entry = CacheEntry(
            key=key,
            event=event,
            stored_at=stored_at or self._clock(),
            seq=next(self._seq),
        )
        self._cache[key] = entry
        self._writes += 1
        logger.debug(f"[{self.name}] stored {key}")
        return entry

    def get(self, key: str) -> Optional[Event]:
        entry = self.get_entry(key)
        return entry.event if entry else None

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        return self._cache.get(key)

    def get_most_recent(self) -> Optional[Event]:
        """
        Return the event with the greatest ``stored_at`` across all keys.

        Used to answer "give me a simulation" when the caller has no key.
        """
        entries = self.entries()
        if not entries:
            return None
        latest = max(entries, key=lambda e: (e.stored_at, e.seq))
        return latest.event

    def list_all(self) -> List[Tuple[str, Event]]:
        """All live (key, event) pairs. Callers must not rely on the order."""
        return [(entry.key, entry.event) for entry in self.entries()]

    def entries(self) -> List[CacheEntry]:
        """Snapshot of live entries. Does not count as a use for eviction."""
        self._cache.expire()
        # Cache.__getitem__ skips TTLCache's LRU bookkeeping
        return [Cache.__getitem__(self._cache, key) for key in list(self._cache)]

    def clear(self) -> None:
        self._cache.clear()

    def stats(self) -> Dict[str, Any]:
        return {
            "size": len(self),
            "maxsize": self._cache.maxsize,
            "ttl": self._cache.ttl,
            "writes": self._writes,
        }

    def __len__(self) -> int:
        self._cache.expire()
        return len(self._cache)

    def __contains__(self, key: object) -> bool:
        return key in self._cache
