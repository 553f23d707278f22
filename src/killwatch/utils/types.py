from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, TypedDict

# ---- raw feed values ----

FieldKind = Literal["str", "int", "float", "map", "other"]

@dataclass(slots=True, frozen=True)
class FieldValue:
    """
    A raw JSON value tagged with the shape it arrived in.
    The feed changes types between calls (ids as ints one day, floats or
    strings the next), so every field goes through this before conversion.
    """
    kind: FieldKind
    raw: Any

# ---- ingest-level primitives ----

@dataclass(slots=True)
class Record:
    id: str
    occurred_at: datetime       # tz-aware UTC
    location_id: str = ""       # "" -> no location, never suppressed
    magnitude: float = 0.0      # zkb totalValue (ISK)

# ---- notification payloads ----

class KillEvent(TypedDict, total=False):
    id: str
    url: str
    occurred_at: str
    location_id: str
    magnitude: float
