from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from killwatch.utils.errors import ConfigError

_TRUTHY = ("1", "true", "yes")

@dataclass(slots=True)
class AppConfig:
    zkb_url: str                 # "zkurl" in config.json
    channel: str                 # slack channel to post to
    slackbot_url: str            # Slackbot POST URL from the Slack integration config
    interval: timedelta = timedelta(minutes=5)
    fetch_window: timedelta = timedelta(hours=1)
    ignore_window: timedelta = timedelta(hours=2)
    pacing_s: float = 0.5
    override_threshold: float = 1_000_000_000.0
    http_timeout_s: float | None = None
    post_url: str = field(default="", init=False)  # built by validate()

    def validate(self) -> "AppConfig":
        """
        Check the config and build post_url: slackbot_url with
        channel=<channel> merged into its query string.
        """
        if not self.zkb_url:
            raise ConfigError("zkurl is required")
        u = urlsplit(self.slackbot_url)
        if not u.scheme or not u.netloc:
            raise ConfigError(f"could not parse provided url: {self.slackbot_url!r}")
        if self.fetch_window > self.ignore_window:
            raise ConfigError("fetch window must not exceed the ignore window")
        if self.interval.total_seconds() <= 0:
            raise ConfigError("interval must be positive")
        q = [(k, v) for k, v in parse_qsl(u.query, keep_blank_values=True) if k != "channel"]
        q.append(("channel", self.channel))
        self.post_url = urlunsplit((u.scheme, u.netloc, u.path, urlencode(q), u.fragment))
        return self


def _seconds(d: dict, key: str, default: timedelta) -> timedelta:
    if key not in d:
        return default
    try:
        return timedelta(seconds=float(d[key]))
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number of seconds, got {d[key]!r}") from None


def config_from_dict(d: dict) -> AppConfig:
    missing = [k for k in ("zkurl", "channel", "slackbot_url") if not d.get(k)]
    if missing:
        raise ConfigError(f"missing config keys: {', '.join(missing)}")
    try:
        cfg = AppConfig(
            zkb_url=str(d["zkurl"]),
            channel=str(d["channel"]),
            slackbot_url=str(d["slackbot_url"]),
            interval=_seconds(d, "interval_s", timedelta(minutes=5)),
            fetch_window=_seconds(d, "fetch_window_s", timedelta(hours=1)),
            ignore_window=_seconds(d, "ignore_window_s", timedelta(hours=2)),
            pacing_s=float(d.get("pacing_s", 0.5)),
            override_threshold=float(d.get("override_threshold", 1_000_000_000.0)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid config value: {e}") from e
    return cfg.validate()


def load_config(path: str | Path) -> AppConfig:
    """Read and validate the JSON config file. Raises ConfigError."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"error reading config file {path}: {e}") from e
    try:
        d = json.loads(raw)
    except ValueError as e:
        raise ConfigError(f"error reading config JSON: {e}") from e
    if not isinstance(d, dict):
        raise ConfigError("config JSON must be an object")
    cfg = config_from_dict(d)
    timeout = os.getenv("KILLWATCH_HTTP_TIMEOUT_S")
    if timeout:
        try:
            cfg.http_timeout_s = float(timeout)
        except ValueError:
            raise ConfigError(f"KILLWATCH_HTTP_TIMEOUT_S must be a number, got {timeout!r}") from None
    return cfg


@dataclass(slots=True)
class RunOptions:
    """Process-level switches, read from the environment."""
    config_path: str = "config.json"
    ignore_path: str = ""
    dry_run: bool = False
    log_level: str = "INFO"


def options_from_env() -> RunOptions:
    return RunOptions(
        config_path=os.getenv("KILLWATCH_CONFIG", "config.json"),
        ignore_path=os.getenv("KILLWATCH_IGNORE_PATH", ""),
        dry_run=os.getenv("KILLWATCH_DRY_RUN", "0").lower() in _TRUTHY,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
