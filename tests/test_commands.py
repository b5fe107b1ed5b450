import re

import pytest

from icebot.bot import IceBot
from icebot.commands import COMMAND_NAMES, COMMANDS, OPT_CHANNEL, OPT_INTEGER, PERM_ADMINISTRATOR
from icebot.config import load_settings

ADMIN_ONLY = {"editembed", "purge", "timeout", "untimeout", "ban", "unban", "verifyemb"}
NAME = re.compile(r"^[a-z0-9_-]{1,32}$")


def by_name(name):
    return next(c for c in COMMANDS if c["name"] == name)


def test_command_set():
    assert sorted(COMMAND_NAMES) == sorted(
        ["updates", "embed", "editembed", "purge", "timeout", "untimeout", "ban", "unban", "verifyemb"])
    assert len(set(COMMAND_NAMES)) == len(COMMAND_NAMES)


@pytest.mark.parametrize("cmd", COMMANDS, ids=lambda c: c["name"])
def test_payload_shape(cmd):
    assert NAME.match(cmd["name"])
    assert 1 <= len(cmd["description"]) <= 100
    assert cmd["dm_permission"] is False
    if cmd["name"] in ADMIN_ONLY:
        assert cmd["default_member_permissions"] == str(PERM_ADMINISTRATOR)
    else:
        assert "default_member_permissions" not in cmd
    options = cmd.get("options", [])
    required = [o["required"] for o in options]
    assert required == sorted(required, reverse=True), "required options must come first"
    for opt in options:
        assert NAME.match(opt["name"])


def test_numeric_ranges():
    count = by_name("purge")["options"][0]
    assert (count["type"], count["min_value"], count["max_value"]) == (OPT_INTEGER, 1, 100)
    minutes = by_name("timeout")["options"][1]
    assert (minutes["min_value"], minutes["max_value"]) == (1, 40320)
    days = by_name("ban")["options"][2]
    assert (days["min_value"], days["max_value"], days["required"]) == (0, 7, False)


def test_channel_options_are_text_only():
    for cmd in COMMANDS:
        for opt in cmd.get("options", []):
            if opt["type"] == OPT_CHANNEL:
                assert opt["channel_types"] == [0]


def test_bot_tree_dispatches_every_registered_command(tmp_path):
    settings = load_settings({
        "DISCORD_TOKEN": "token",
        "CLIENT_ID": "123456789012345678",
        "SELLAPP_API_KEY": "key",
        "SQLITE_PATH": str(tmp_path / "bot.sqlite"),
    })
    bot = IceBot(settings)
    assert sorted(c.name for c in bot.tree.get_commands()) == sorted(COMMAND_NAMES)
