from __future__ import annotations

import math
from typing import Any, Optional

import structlog

from killwatch.utils.errors import FeedDecodeError, RecordDecodeError
from killwatch.utils.time import parse_kill_time
from killwatch.utils.types import FieldValue, Record

log = structlog.get_logger("parser")

# feed keys
ID_KEY = "killID"
TIME_KEY = "killTime"
LOCATION_KEY = "solarSystemID"
SUB_KEY = "zkb"
VALUE_KEY = "totalValue"


def field_value(raw: Any) -> FieldValue:
    """Tag a decoded JSON value. bool is a subclass of int, so check it first."""
    if isinstance(raw, bool):
        return FieldValue("other", raw)
    if isinstance(raw, str):
        return FieldValue("str", raw)
    if isinstance(raw, int):
        return FieldValue("int", raw)
    if isinstance(raw, float):
        return FieldValue("float", raw)
    if isinstance(raw, dict):
        return FieldValue("map", raw)
    return FieldValue("other", raw)


def value_to_string(v: FieldValue) -> Optional[str]:
    """
    Convert an id-like value to text.
      - str   -> as-is
      - int   -> decimal
      - float -> truncated to int (42.9 -> "42"), never rounded
    Anything else returns None.
    """
    if v.kind == "str":
        return v.raw
    if v.kind == "int":
        return str(v.raw)
    if v.kind == "float" and math.isfinite(v.raw):
        return str(int(v.raw))
    log.debug("ignoring_unknown_type", type=type(v.raw).__name__)
    return None


def parse_record(m: dict) -> Record:
    """
    Extract one Record from a feed element. The zkb data is dynamic, so only
    the id and kill time are required; everything else degrades to defaults.
    Raises RecordDecodeError when a required field is unusable.
    """
    if ID_KEY not in m:
        raise RecordDecodeError("contained no killID")
    kill_id = value_to_string(field_value(m[ID_KEY]))
    if kill_id is None:
        raise RecordDecodeError(f"could not convert id to string: {m[ID_KEY]!r}")

    if TIME_KEY not in m:
        raise RecordDecodeError("no time available")
    kts = value_to_string(field_value(m[TIME_KEY]))
    if kts is None:
        raise RecordDecodeError(f"could not convert time to string: {m[TIME_KEY]!r}")
    try:
        occurred_at = parse_kill_time(kts)
    except ValueError:
        raise RecordDecodeError(f"could not parse time: {kts}") from None

    rec = Record(id=kill_id, occurred_at=occurred_at)

    if LOCATION_KEY in m:
        loc = value_to_string(field_value(m[LOCATION_KEY]))
        if loc is not None:
            rec.location_id = loc

    rec.magnitude = _parse_magnitude(m.get(SUB_KEY), kill_id)
    return rec


def _parse_magnitude(sub: Any, kill_id: str) -> float:
    # totalValue isn't always available; bail to 0.0 rather than fail the record
    sv = field_value(sub)
    if sv.kind != "map":
        return 0.0
    if VALUE_KEY not in sv.raw:
        return 0.0

    val = field_value(sv.raw[VALUE_KEY])
    if val.kind in ("int", "float"):
        return float(val.raw)
    if val.kind == "str":
        try:
            return float(val.raw)
        except ValueError:
            log.warning("value_parse_error", kill_id=kill_id, value=val.raw)
            return 0.0
    log.warning("value_unknown_type", kill_id=kill_id, type=type(val.raw).__name__)
    return 0.0


def decode_records(payload: Any) -> list[Record]:
    """
    Decode a whole feed response (already JSON-decoded).
    The envelope must be a list of objects (null elements allowed); anything
    else fails the whole batch with FeedDecodeError. Null elements and
    elements missing required fields are dropped one by one.
    """
    if not isinstance(payload, list):
        raise FeedDecodeError(f"expected a JSON array, got {type(payload).__name__}")
    for m in payload:
        if m is not None and not isinstance(m, dict):
            raise FeedDecodeError(f"expected an array of objects, found {type(m).__name__}")

    out: list[Record] = []
    for m in payload:
        if m is None:
            log.warning("kill_parse_error", err="null element", snippet="null")
            continue
        try:
            out.append(parse_record(m))
        except RecordDecodeError as e:
            log.warning("kill_parse_error", err=str(e), snippet=str(m)[:200])
    return out
