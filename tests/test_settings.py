from __future__ import annotations

from datetime import time
from pathlib import Path

import pytest

from birthday_reminders.settings import load_settings, parse_send_time, parse_user_ids


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for name in (
        "TELEGRAM_ALLOWED_USER_IDS",
        "BIRTHDAY_DATA_DIR",
        "BIRTHDAY_TIMEZONE",
        "BIRTHDAY_SEND_TIME",
        "LEAP_DAY_RULE",
        "TICK_POLL_SECONDS",
        "NOTIFICATION_QUEUE_SIZE",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", " token ")

    settings = load_settings()

    assert settings.telegram_bot_token == "token"
    assert settings.allowed_user_ids == frozenset()
    assert settings.data_dir == tmp_path / "data" / "owners"
    assert settings.timezone == "UTC"
    assert settings.send_time == time(9, 0)
    assert settings.leap_day_rule == "feb28"
    assert settings.tick_poll_seconds == 60.0
    assert settings.notification_queue_size == 1000


def test_load_settings_requires_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)

    with pytest.raises(ValueError):
        load_settings()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("BIRTHDAY_TIMEZONE", "Mars/Olympus"),
        ("LEAP_DAY_RULE", "feb30"),
        ("TICK_POLL_SECONDS", "0"),
        ("BIRTHDAY_SEND_TIME", "25:00"),
        ("TELEGRAM_ALLOWED_USER_IDS", "12,abc"),
    ],
)
def test_load_settings_rejects_invalid_values(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "token")
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError):
        load_settings()


def test_parse_send_time() -> None:
    assert parse_send_time("07:30") == time(7, 30)
    with pytest.raises(ValueError):
        parse_send_time("7")


def test_parse_user_ids() -> None:
    assert parse_user_ids(" 1, 2,,3 ") == frozenset({1, 2, 3})
