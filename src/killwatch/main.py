# src/killwatch/main.py
import asyncio
import sys

import structlog
from dotenv import load_dotenv

from killwatch.config import AppConfig, RunOptions, load_config, options_from_env
from killwatch.logging_conf import configure_logging
from killwatch.utils.errors import ConfigError

# Feed
from killwatch.ingest.zkb_client import ZkbClient, ZkbClientConfig

# Filtering (cache lives for the whole process)
from killwatch.alerts.dedup import KillCache
from killwatch.alerts.filters import FilterPipeline
from killwatch.alerts.ignore_list import load_ignore_list
from killwatch.alerts.rules import FilterRule

# Sinks
from killwatch.alerts.notifiers import ConsoleNotifier
from killwatch.notify.slackbot import SlackbotConfig, SlackbotNotifier

from killwatch.poller import PollConfig, PollLoop

log = structlog.get_logger()


def build_loop(cfg: AppConfig, opts: RunOptions) -> PollLoop:
    """Wire the feed client, filters and sink into a PollLoop."""
    source = ZkbClient(ZkbClientConfig(base_url=cfg.zkb_url, timeout_s=cfg.http_timeout_s))

    pipeline = FilterPipeline(
        rule=FilterRule(
            ignore_window=cfg.ignore_window,
            override_threshold=cfg.override_threshold,
        ),
        suppressed=load_ignore_list(opts.ignore_path),
        cache=KillCache(),
    )

    if opts.dry_run:
        sink = ConsoleNotifier()
    else:
        sink = SlackbotNotifier(
            SlackbotConfig(post_url=cfg.post_url, pacing_s=cfg.pacing_s, timeout_s=cfg.http_timeout_s)
        )

    return PollLoop(
        PollConfig(interval=cfg.interval, fetch_window=cfg.fetch_window),
        source=source,
        pipeline=pipeline,
        sink=sink,
    )


async def main(opts: RunOptions | None = None) -> int:
    opts = opts or options_from_env()
    configure_logging(opts.log_level)
    log.info("starting_up", config_path=opts.config_path,
             ignore_path=opts.ignore_path, dry_run=opts.dry_run)

    try:
        cfg = load_config(opts.config_path)
    except ConfigError as e:
        log.error("config_invalid", err=str(e))
        return 1

    loop = build_loop(cfg, opts)
    await loop.source.start()
    await loop.sink.start()
    try:
        await loop.run()
    finally:
        # graceful shutdown to avoid unclosed sessions
        for obj in (loop.source, loop.sink):
            try:
                await obj.stop()
            except Exception as e:
                log.warning("shutdown_error", err=str(e))
    return 0


def cli() -> None:
    load_dotenv()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
