from __future__ import annotations

from datetime import datetime
from typing import AbstractSet, Iterable

import structlog

from killwatch.alerts.dedup import KillCache
from killwatch.alerts.rules import FilterRule
from killwatch.utils.types import Record


class FilterPipeline:
    """
    Recency → suppression → dedup, first exclusion wins.
    Dedup runs last, so a kill dropped as too old or suppressed never
    enters the cache.
    """

    def __init__(self, rule: FilterRule, suppressed: AbstractSet[str], cache: KillCache):
        self.rule = rule
        self.suppressed = frozenset(suppressed)
        self.cache = cache
        self._log = structlog.get_logger("filters")

    def apply(self, records: Iterable[Record], now: datetime) -> list[Record]:
        """Return the records worth posting, in fetch order."""
        ignore_before = now - self.rule.ignore_window
        out: list[Record] = []
        for k in records:
            if k.occurred_at < ignore_before:
                self._log.info("kill_too_old", kill_id=k.id, now=now.isoformat(),
                               kill_time=k.occurred_at.isoformat())
                continue
            if self.is_suppressed(k):
                self._log.info("kill_suppressed", kill_id=k.id, system_id=k.location_id)
                continue
            if self.cache.check(k.id, now):
                self._log.debug("kill_in_cache", kill_id=k.id)
                continue
            self._log.info("kill_accepted", kill_id=k.id, system_id=k.location_id)
            out.append(k)
        return out

    def is_suppressed(self, k: Record) -> bool:
        # we post big kills even from ignored systems, people should know
        if not k.location_id or k.location_id not in self.suppressed:
            return False
        return not self.rule.overrides_suppression(k.magnitude)
