from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

import aiohttp
import structlog

from killwatch.alerts.formatting import ZKB_URL, kill_url
from killwatch.utils.errors import EmissionError
from killwatch.utils.types import Record

log = structlog.get_logger("slackbot")

# --------- config & client ----------

@dataclass(slots=True)
class SlackbotConfig:
    post_url: str                      # slackbot url with ?channel=... already applied
    pacing_s: float = 0.5              # gap between posts within a batch
    timeout_s: Optional[float] = None  # None -> aiohttp default
    site_url: str = ZKB_URL            # links point here

class SlackbotNotifier:
    """
    Posts kill links to a Slackbot remote-control URL, one message per kill.

    The feed lists newest first; we post oldest first so the channel reads
    chronologically. First non-200 aborts the rest of the batch: no retries,
    no rollback of what already went out.
    """
    def __init__(
        self,
        cfg: SlackbotConfig,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.cfg = cfg
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep

    async def start(self):
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def stop(self):
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    async def send_batch(self, kills: Sequence[Record]) -> int:
        """
        Post every kill, oldest first, sleeping pacing_s between posts.
        Returns the number posted. Raises EmissionError on a non-200.
        """
        sent = 0
        for i, k in enumerate(reversed(kills)):
            if i:
                await self._sleep(self.cfg.pacing_s)
            try:
                await self._send(kill_url(k.id, self.cfg.site_url))
            except EmissionError as e:
                e.sent = sent
                raise
            sent += 1
        return sent

    async def _send(self, text: str):
        assert self._session is not None, "call start() first"
        log.info("posting_kill", url=text)
        async with self._session.post(
            self.cfg.post_url,
            data=text.encode("utf-8"),
            headers={"Content-Type": "text/plain"},
        ) as resp:
            body = await _maybe_text(resp)
            if resp.status != 200:
                raise EmissionError(resp.status, body)
            log.info("slackbot_ok", body=body)

async def _maybe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except Exception:
        return "<no body>"
