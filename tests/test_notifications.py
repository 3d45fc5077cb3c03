"""Tests for Discord webhook notifications (mocked session, no network)."""

from unittest.mock import MagicMock

import requests

from comp_trader.config import NotificationConfig
from comp_trader.notifications import DiscordNotifier


def test_disabled_without_url():
    session = MagicMock()
    notifier = DiscordNotifier(NotificationConfig(webhook_url=""), session=session)
    assert notifier.send("hello") is False
    session.post.assert_not_called()


def test_posts_payload():
    session = MagicMock()
    config = NotificationConfig(webhook_url="https://discord.test/hook",
                                username="Bot", avatar_url="https://img.test/a.png")
    assert DiscordNotifier(config, session=session).send("Round started") is True

    url = session.post.call_args.args[0]
    payload = session.post.call_args.kwargs["json"]
    assert url == "https://discord.test/hook"
    assert payload == {"content": "Round started", "username": "Bot",
                       "avatar_url": "https://img.test/a.png"}


def test_overrides_name_and_icon():
    session = MagicMock()
    config = NotificationConfig(webhook_url="https://discord.test/hook", avatar_url="")
    DiscordNotifier(config, session=session).send("x", username="Other", avatar_url="i.png")

    payload = session.post.call_args.kwargs["json"]
    assert payload["username"] == "Other"
    assert payload["avatar_url"] == "i.png"


def test_failure_is_swallowed_and_logged(caplog):
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("discord down")
    config = NotificationConfig(webhook_url="https://discord.test/hook")

    assert DiscordNotifier(config, session=session).send("x") is False
    assert "Discord notification failed" in caplog.text
