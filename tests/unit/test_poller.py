import asyncio
from datetime import datetime, timedelta, timezone

import aiohttp
import pytest

from killwatch.alerts.dedup import KillCache
from killwatch.alerts.filters import FilterPipeline
from killwatch.alerts.rules import FilterRule
from killwatch.poller import PollConfig, PollLoop
from killwatch.utils.errors import EmissionError, FeedStatusError
from killwatch.utils.types import Record

T0 = datetime(2024, 1, 1, 3, 0, tzinfo=timezone.utc)


class FakeSource:
    """Returns scripted batches (or raises scripted exceptions) per fetch."""
    def __init__(self, batches):
        self.batches = list(batches)
        self.since = []

    async def start(self): ...
    async def stop(self): ...

    async def fetch_since(self, since):
        self.since.append(since)
        b = self.batches.pop(0) if self.batches else []
        if isinstance(b, Exception):
            raise b
        return list(b)


class FakeSink:
    def __init__(self, fail_with=None):
        self.batches = []
        self.fail_with = fail_with

    async def start(self): ...
    async def stop(self): ...

    async def send_batch(self, kills):
        self.batches.append([k.id for k in kills])
        if self.fail_with:
            raise self.fail_with
        return len(kills)


class Clock:
    def __init__(self, t):
        self.t = t

    def __call__(self):
        return self.t


def _kill(kid, at):
    return Record(id=kid, occurred_at=at)


def _loop(batches, sink=None, clock=None, sleeps=None):
    async def fake_sleep(s):
        if sleeps is not None:
            sleeps.append(s)
        if clock is not None:
            clock.t += timedelta(seconds=s)

    pipeline = FilterPipeline(FilterRule(ignore_window=timedelta(hours=2)), set(), KillCache())
    return PollLoop(PollConfig(interval=timedelta(minutes=5), fetch_window=timedelta(hours=1)),
                    source=FakeSource(batches), pipeline=pipeline, sink=sink or FakeSink(),
                    clock=clock or Clock(T0), sleep=fake_sleep)


@pytest.mark.asyncio
async def test_first_cycle_is_warmup():
    sink = FakeSink()
    loop = _loop([[_kill("1", T0 - timedelta(minutes=3))]], sink=sink)
    res = await loop.run_cycle()
    assert res.warmup is True
    assert [k.id for k in res.accepted] == ["1"]
    assert sink.batches == []
    assert "1" in loop.cache
    assert loop.state == "idle"


@pytest.mark.asyncio
async def test_second_cycle_emits_only_new_kills():
    clock = Clock(T0)
    sink = FakeSink()
    k1 = _kill("1", T0 - timedelta(minutes=3))
    k2 = _kill("2", T0 + timedelta(minutes=2))
    loop = _loop([[k1], [k2, k1]], sink=sink, clock=clock)
    await loop.run_cycle()
    clock.t += timedelta(minutes=5)
    res = await loop.run_cycle()
    assert res.warmup is False
    assert sink.batches == [["2"]]
    assert res.emitted == 1


@pytest.mark.asyncio
async def test_fetch_window_requested():
    loop = _loop([[]])
    await loop.run_cycle()
    assert loop.source.since == [T0 - timedelta(hours=1)]


@pytest.mark.asyncio
@pytest.mark.parametrize("err", [FeedStatusError(502, "bad gateway"),
                                 aiohttp.ClientConnectionError("refused"),
                                 asyncio.TimeoutError()])
async def test_fetch_failure_is_zero_records(err):
    loop = _loop([err])
    res = await loop.run_cycle()
    assert res.fetched == 0
    assert res.fetch_error is not None
    assert loop.cycles == 1


@pytest.mark.asyncio
async def test_emit_failure_does_not_stop_loop_and_is_not_retried():
    clock = Clock(T0)
    sink = FakeSink(fail_with=EmissionError(500, "nope"))
    k = _kill("9", T0 + timedelta(minutes=1))
    loop = _loop([[], [k], [k]], sink=sink, clock=clock)
    await loop.run_cycle()
    clock.t += timedelta(minutes=5)
    res = await loop.run_cycle()
    assert res.emit_error is not None
    clock.t += timedelta(minutes=5)
    await loop.run_cycle()
    # already cached, so the failed kill is never attempted again
    assert sink.batches == [["9"]]


@pytest.mark.asyncio
async def test_eviction_runs_every_cycle():
    clock = Clock(T0)
    loop = _loop([[_kill("1", T0)], [], []], clock=clock)
    await loop.run_cycle()
    clock.t += timedelta(hours=2)
    res = await loop.run_cycle()
    assert res.evicted == 0 and "1" in loop.cache    # cutoff == first seen, kept
    clock.t += timedelta(seconds=1)
    res = await loop.run_cycle()
    assert res.evicted == 1 and "1" not in loop.cache


@pytest.mark.asyncio
async def test_run_sleeps_between_cycles_not_before_first():
    sleeps = []
    loop = _loop([[], [], []], sleeps=sleeps, clock=Clock(T0))
    await loop.run(max_cycles=3)
    assert loop.cycles == 3
    assert sleeps == [300.0, 300.0]


@pytest.mark.asyncio
async def test_stop_ends_run_at_next_sleep():
    loop = _loop([[]] * 10)
    orig = loop._sleep

    async def stopping_sleep(s):
        loop.stop()
        await orig(s)

    loop._sleep = stopping_sleep
    await loop.run()
    assert loop.cycles == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [200, 503])
async def test_undecodable_feed_body_is_zero_records(status):
    from killwatch.ingest.zkb_client import ZkbClient, ZkbClientConfig
    from tests.helpers.fake_http import FakeResponse, FakeSession

    session = FakeSession([FakeResponse(status, b'[{"killID": 1, "killTime": "\xff\xfe"}]')])
    source = ZkbClient(ZkbClientConfig(base_url="https://zkb.test/"), session=session)
    loop = _loop([])
    loop.source = source
    res = await loop.run_cycle()
    assert res.fetched == 0
    assert res.fetch_error is not None
    assert loop.state == "idle"


@pytest.mark.asyncio
async def test_unexpected_cycle_error_does_not_end_run():
    sleeps = []
    loop = _loop([RuntimeError("boom"), [], []], sleeps=sleeps, clock=Clock(T0))
    await loop.run(max_cycles=3)
    assert loop.cycles == 3
    assert loop.first_run is False
    assert sleeps == [300.0, 300.0]
