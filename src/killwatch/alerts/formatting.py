from __future__ import annotations

from killwatch.utils.types import KillEvent, Record

ZKB_URL = "https://zkillboard.com/"

def kill_url(kill_id: str, site_url: str = ZKB_URL) -> str:
    return f"{site_url}kill/{kill_id}/"

def to_event(k: Record, site_url: str = ZKB_URL) -> KillEvent:
    return KillEvent(
        id=k.id,
        url=kill_url(k.id, site_url),
        occurred_at=k.occurred_at.strftime("%Y-%m-%d %H:%M:%S"),
        location_id=k.location_id,
        magnitude=k.magnitude,
    )

def format_kill_console(evt: KillEvent) -> str:
    isk = float(evt.get("magnitude", 0.0))
    sys_id = evt.get("location_id") or "?"
    return (
        f"[KILL {evt.get('id', '?')}] {evt.get('occurred_at', '')} "
        f"system={sys_id} value={isk:,.0f} ISK  |  {evt.get('url', '')}"
    )
