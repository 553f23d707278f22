from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import aiohttp
import structlog

from killwatch.ingest import parser
from killwatch.utils.errors import FeedDecodeError, FeedStatusError
from killwatch.utils.time import format_start_time
from killwatch.utils.types import Record


@dataclass(slots=True)
class ZkbClientConfig:
    base_url: str                       # e.g. https://zkillboard.com/api/kills/
    timeout_s: Optional[float] = None   # None -> aiohttp default
    user_agent: str = "killwatch"


class ZkbClient:
    """
    Fetches the kill feed for a trailing window and hands the body to the
    permissive decoder.

    Usage:
        client = ZkbClient(ZkbClientConfig(base_url=...))
        await client.start()
        kills = await client.fetch_since(now - timedelta(hours=1))
        await client.stop()
    """

    def __init__(self, cfg: ZkbClientConfig, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg
        self._session = session
        self._owns_session = session is None
        self._log = structlog.get_logger("zkb_client")

    async def start(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(
                timeout=timeout, headers={"User-Agent": self.cfg.user_agent}
            )
            self._owns_session = True

    async def stop(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    def url_since(self, since: datetime) -> str:
        return self.cfg.base_url + f"startTime/{format_start_time(since)}/"

    async def fetch_since(self, since: datetime) -> list[Record]:
        """
        GET the window starting at `since`.
        Raises FeedStatusError on non-200 and FeedDecodeError on a malformed
        envelope; transport errors (aiohttp.ClientError, timeouts) propagate.
        """
        assert self._session is not None, "call start() first"
        url = self.url_since(since)
        self._log.info("fetching", url=url)
        async with self._session.get(url) as resp:
            if resp.status != 200:
                raise FeedStatusError(resp.status, await resp.text(errors="replace"))
            raw = await resp.read()
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (ValueError, RecursionError) as e:
            # UnicodeDecodeError is a ValueError; deep nesting blows the stack
            raise FeedDecodeError(f"invalid JSON: {type(e).__name__}: {e}") from e
        kills = parser.decode_records(payload)
        self._log.info("fetched", url=url, elements=len(payload), kills=len(kills))
        return kills
