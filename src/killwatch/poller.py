from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Literal, Optional, Protocol, Sequence

import aiohttp
import structlog

from killwatch.alerts.dedup import KillCache
from killwatch.alerts.filters import FilterPipeline
from killwatch.utils.errors import EmissionError, FeedError
from killwatch.utils.time import utc_now, window_start
from killwatch.utils.types import Record

LoopState = Literal["idle", "fetching", "filtering", "emitting", "evicting"]


class KillSource(Protocol):
    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    async def fetch_since(self, since: datetime) -> list[Record]: ...


class KillSink(Protocol):
    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    async def send_batch(self, kills: Sequence[Record]) -> int: ...


@dataclass(slots=True)
class PollConfig:
    interval: timedelta = timedelta(minutes=5)
    # shorter than FilterRule.ignore_window so consecutive fetches overlap
    fetch_window: timedelta = timedelta(hours=1)


@dataclass(slots=True)
class CycleResult:
    now: datetime
    fetched: int = 0
    accepted: list[Record] = field(default_factory=list)
    emitted: int = 0
    evicted: int = 0
    warmup: bool = False
    fetch_error: Optional[str] = None
    emit_error: Optional[str] = None


class PollLoop:
    """
    Fixed-cadence fetch → filter → emit → evict loop.

    Lifecycle:
      - first cycle runs immediately and only warms the cache (nothing posted)
      - then sleep `interval` between cycle starts until stop()
      - fetch/emit failures are logged and the loop carries on
    Cycles never overlap; everything runs on one task.

    Usage:
        loop = PollLoop(cfg, source, pipeline, sink)
        await loop.run()   # until cancelled/stop() called
    """

    def __init__(
        self,
        cfg: PollConfig,
        source: KillSource,
        pipeline: FilterPipeline,
        sink: KillSink,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.cfg = cfg
        self.source = source
        self.pipeline = pipeline
        self.sink = sink
        self._clock = clock
        self._sleep = sleep
        self._log = structlog.get_logger("poller")
        self._stop = asyncio.Event()

        self.state: LoopState = "idle"
        self.first_run: bool = True
        self.cycles: int = 0

    @property
    def cache(self) -> KillCache:
        return self.pipeline.cache

    # ---------------------------- public API ---------------------------- #

    async def run(self, max_cycles: Optional[int] = None) -> None:
        self._log.info("poll_loop_start", interval_s=self.cfg.interval.total_seconds(),
                       fetch_window_s=self.cfg.fetch_window.total_seconds(),
                       ignore_window_s=self.pipeline.rule.ignore_window.total_seconds())
        while not self._stop.is_set():
            if self.cycles:
                await self._sleep(self.cfg.interval.total_seconds())
                if self._stop.is_set():
                    break
            try:
                await self.run_cycle()
            except Exception as e:
                # never let one bad cycle take the process down
                self._log.exception("cycle_error", err=str(e))
                self.state = "idle"
                self.first_run = False
                self.cycles += 1
            if max_cycles is not None and self.cycles >= max_cycles:
                break
        self._log.info("poll_loop_exit", cycles=self.cycles)

    def stop(self) -> None:
        self._stop.set()

    async def run_cycle(self) -> CycleResult:
        now = self._clock()
        res = CycleResult(now=now, warmup=self.first_run)

        self.state = "fetching"
        kills = await self._fetch(now, res)
        res.fetched = len(kills)

        self.state = "filtering"
        res.accepted = self.pipeline.apply(kills, now)

        if not self.first_run and res.accepted:
            self.state = "emitting"
            await self._emit(res)
        elif self.first_run and res.accepted:
            self._log.info("warmup_cycle_skip_emit", kills=len(res.accepted))
        self.first_run = False

        self.state = "evicting"
        res.evicted = self.cache.evict(window_start(now, self.pipeline.rule.ignore_window))

        self.state = "idle"
        self.cycles += 1
        self._log.info("cycle_done", cycle=self.cycles, fetched=res.fetched,
                       accepted=len(res.accepted), emitted=res.emitted,
                       evicted=res.evicted, cache_size=len(self.cache))
        return res

    # --------------------------- core internals ------------------------- #

    async def _fetch(self, now: datetime, res: CycleResult) -> list[Record]:
        since = window_start(now, self.cfg.fetch_window)
        try:
            return await self.source.fetch_since(since)
        except (FeedError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._log.warning("fetch_failed", err=str(e), since=since.isoformat())
            res.fetch_error = str(e)
            return []

    async def _emit(self, res: CycleResult) -> None:
        try:
            res.emitted = await self.sink.send_batch(res.accepted)
        except (EmissionError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            # the kill is already cached, so it won't be retried next cycle
            self._log.error("emit_failed", err=str(e), batch=len(res.accepted))
            res.emitted = getattr(e, "sent", 0)
            res.emit_error = str(e)
