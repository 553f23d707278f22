from __future__ import annotations

from datetime import datetime

import structlog

log = structlog.get_logger("dedup")

class KillCache:
    """
    Kills we have already seen, keyed by kill id -> first-seen time.

    Each fetch overlaps the previous one so boundary kills aren't missed;
    this cache is what keeps the overlap from double-posting. Entries only
    leave through evict(), never because they were emitted.
    """
    def __init__(self):
        self._store: dict[str, datetime] = {}  # kill id -> first seen

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def first_seen(self, key: str) -> datetime | None:
        return self._store.get(key)

    def check(self, key: str, now: datetime) -> bool:
        """
        True if `key` was already seen (store untouched).
        Otherwise record it at `now` and return False.
        No awaits in here, so check-and-insert is atomic on the event loop.
        """
        if key in self._store:
            return True
        self._store[key] = now
        return False

    def evict(self, before: datetime) -> int:
        """Drop entries first seen strictly before `before`. Returns the count."""
        stale = [k for k, ts in self._store.items() if ts < before]
        for k in stale:
            del self._store[k]
        if stale:
            log.info("cache_evicted", dropped=len(stale), remaining=len(self._store))
        return len(stale)
