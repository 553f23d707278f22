import json

import pytest

from killwatch import main as app
from killwatch.alerts.notifiers import ConsoleNotifier
from killwatch.config import RunOptions, config_from_dict
from killwatch.notify.slackbot import SlackbotNotifier

BASE = {
    "zkurl": "https://zkillboard.com/api/kills/",
    "channel": "kills",
    "slackbot_url": "https://team.slack.com/services/hooks/slackbot?token=abc",
}

def test_build_loop_wires_sink_and_ignore_list(tmp_path):
    ignored = tmp_path / "ignored.txt"
    ignored.write_text("30000142\n")
    cfg = config_from_dict(BASE)

    loop = app.build_loop(cfg, RunOptions(ignore_path=str(ignored)))
    assert isinstance(loop.sink, SlackbotNotifier)
    assert loop.sink.cfg.post_url == cfg.post_url
    assert loop.pipeline.suppressed == {"30000142"}
    assert len(loop.cache) == 0

    dry = app.build_loop(cfg, RunOptions(dry_run=True))
    assert isinstance(dry.sink, ConsoleNotifier)

@pytest.mark.asyncio
async def test_main_exits_nonzero_on_bad_config(tmp_path):
    p = tmp_path / "config.json"
    p.write_text(json.dumps({**BASE, "slackbot_url": "::::"}))
    assert await app.main(RunOptions(config_path=str(p))) == 1
