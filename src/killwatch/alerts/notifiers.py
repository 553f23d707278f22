# src/killwatch/alerts/notifiers.py
from __future__ import annotations
import structlog
from typing import Callable, Optional, Sequence

from killwatch.alerts.formatting import format_kill_console, to_event
from killwatch.utils.types import KillEvent, Record

log = structlog.get_logger("notifier")

class ConsoleNotifier:
    """Dry-run sink: prints instead of posting. Same oldest-first order as Slackbot."""
    def __init__(self, format_fn: Optional[Callable[[KillEvent], str]] = None):
        self._format_fn = format_fn or format_kill_console

    async def start(self):
        return

    async def stop(self):
        return

    async def send_batch(self, kills: Sequence[Record]) -> int:
        for k in reversed(kills):
            evt = to_event(k)
            try:
                print(self._format_fn(evt), flush=True)
            except Exception as e:
                log.warning("console_format_failed", err=str(e))
                print(f"[KILL] {evt['id']} {evt['url']}", flush=True)
        return len(kills)
