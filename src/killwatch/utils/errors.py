from __future__ import annotations


class KillwatchError(Exception):
    """Base for every error raised by killwatch."""


class ConfigError(KillwatchError):
    """Configuration could not be read or validated. Fatal at startup."""


class FeedError(KillwatchError):
    """The feed could not be fetched; the cycle proceeds with zero records."""


class FeedStatusError(FeedError):
    def __init__(self, status: int, body: str = ""):
        super().__init__(f"non-200 status code: {status} - body: {body[:500]}")
        self.status = status
        self.body = body


class FeedDecodeError(FeedError):
    """Response envelope was not a JSON array of objects."""


class RecordDecodeError(KillwatchError):
    """A single feed element lacked a usable id or kill time."""


class EmissionError(KillwatchError):
    def __init__(self, status: int, body: str = ""):
        super().__init__(f"error sending slackbot message {status}: {body}")
        self.status = status
        self.body = body
        self.sent = 0  # posts that succeeded before this one
