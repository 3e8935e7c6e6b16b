import logging
from types import SimpleNamespace

import pytest
from telegram.error import TelegramError
from telegram.ext import CallbackQueryHandler, CommandHandler, MessageHandler

from media_relay import bot, handlers

from .conftest import FakeBot


class SilentAdminBot(FakeBot):
    async def send_message(self, *args, **kwargs):
        raise TelegramError("Chat not found")


@pytest.mark.parametrize("raw,expected", [
    (42, 42),
    ("42", 42),
    (" 42 ", 42),
    (0, None),
    ("", None),
    ("abc", None),
    ("@admin", None),
])
def test_parse_admin_id(raw, expected):
    assert bot.parse_admin_id(raw) == expected


def test_bad_admin_id_disables_admin(cfg, caplog):
    cfg["ADMIN_ID"] = "not-a-number"
    with caplog.at_level(logging.WARNING, logger="media_relay.bot"):
        orchestrator = bot.build_orchestrator(cfg)
    assert orchestrator.registry.admin_id is None
    assert any("ADMIN_ID" in r.getMessage() for r in caplog.records)


async def test_post_init_purges_and_notifies_admin(orchestrator, scratch):
    (scratch / "media_1_stale.mp4").write_bytes(b"x")
    app = SimpleNamespace(bot=FakeBot(), bot_data={"orchestrator": orchestrator})
    await bot.post_init(app)
    assert list(scratch.iterdir()) == []
    names = [name for name, _, _ in app.bot.calls]
    assert names == ["set_my_commands", "send_message"]
    assert app.bot.calls[0][1] == (bot.COMMANDS,)
    _, args, _ = app.bot.calls[1]
    assert args[0] == 42
    assert "Total Users: 0" in args[1]


async def test_post_init_survives_failed_notice(orchestrator):
    app = SimpleNamespace(bot=SilentAdminBot(), bot_data={"orchestrator": orchestrator})
    await bot.post_init(app)
    assert [name for name, _, _ in app.bot.calls] == ["set_my_commands"]


async def test_post_init_without_admin(orchestrator):
    orchestrator.registry.admin_id = None
    app = SimpleNamespace(bot=FakeBot(), bot_data={"orchestrator": orchestrator})
    await bot.post_init(app)
    assert [name for name, _, _ in app.bot.calls] == ["set_my_commands"]


def test_build_app_wiring(cfg):
    cfg["BOT_TOKEN"] = "123:ABC"
    cfg["ADMIN_ID"] = 42
    app = bot.build_app(cfg)
    registered = app.handlers[0]
    commands = set()
    for h in registered:
        if isinstance(h, CommandHandler):
            commands |= set(h.commands)
    assert commands == {"start", "help", "download", "status"}
    assert any(isinstance(h, MessageHandler) and h.callback is handlers.on_text for h in registered)
    assert any(isinstance(h, CallbackQueryHandler) and h.callback is handlers.on_choice for h in registered)
    assert handlers.on_error in app.error_handlers
    assert app.bot_data["orchestrator"].registry is app.bot_data["registry"]
    assert app.bot_data["orchestrator"].registry.admin_id == 42
