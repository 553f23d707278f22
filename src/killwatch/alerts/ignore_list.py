from __future__ import annotations

from pathlib import Path

import structlog

log = structlog.get_logger("ignore_list")

def load_ignore_list(path: str | Path | None) -> frozenset[str]:
    """
    Read a newline delimited list of system IDs to suppress.
    These must be the system IDs, *not* the system names.
    A missing path or unreadable file yields an empty set.
    """
    if not path:
        return frozenset()
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        log.warning("ignore_list_unreadable", path=str(path), err=str(e))
        return frozenset()
    ids = frozenset(line.strip() for line in text.splitlines() if line.strip())
    log.info("ignore_list_loaded", path=str(path), entries=len(ids))
    return ids
