# src/killwatch/alerts/rules.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta

@dataclass(slots=True)
class FilterRule:
    """
    Which fetched kills are worth posting.
    - ignore_window       → kills older than now - ignore_window are dropped
    - override_threshold  → kills in suppressed systems still post when
                            their value is >= this (ISK)
    """
    ignore_window: timedelta = timedelta(hours=2)
    override_threshold: float = 1_000_000_000.0   # 1b ISK

    def overrides_suppression(self, magnitude: float) -> bool:
        # zero/negative values never override
        return magnitude > 0 and magnitude >= self.override_threshold
