from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from birthday_reminders.date_logic import LEAP_DAY_RULES


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    allowed_user_ids: frozenset[int]
    data_dir: Path
    timezone: str
    send_time: time
    leap_day_rule: str
    tick_poll_seconds: float
    notification_queue_size: int
    log_level: str

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _optional_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def parse_send_time(value: str) -> time:
    pieces = value.split(":")
    if len(pieces) != 2:
        raise ValueError("BIRTHDAY_SEND_TIME must be in HH:MM format")

    hour, minute = pieces
    if not hour.isdigit() or not minute.isdigit():
        raise ValueError("BIRTHDAY_SEND_TIME must contain numeric hour/minute")

    hour_i = int(hour)
    minute_i = int(minute)
    if hour_i < 0 or hour_i > 23 or minute_i < 0 or minute_i > 59:
        raise ValueError("BIRTHDAY_SEND_TIME must be a valid 24-hour time")
    return time(hour=hour_i, minute=minute_i)


def parse_user_ids(value: str) -> frozenset[int]:
    ids: set[int] = set()
    for token in value.split(","):
        cleaned = token.strip()
        if not cleaned:
            continue
        if not cleaned.lstrip("-").isdigit():
            raise ValueError(f"TELEGRAM_ALLOWED_USER_IDS contains a non-numeric id: {cleaned}")
        ids.add(int(cleaned))
    return frozenset(ids)


def load_settings() -> Settings:
    root = Path.cwd()

    token = _required_env("TELEGRAM_BOT_TOKEN")
    allowed_user_ids = parse_user_ids(os.getenv("TELEGRAM_ALLOWED_USER_IDS", ""))
    data_dir = Path(os.getenv("BIRTHDAY_DATA_DIR", root / "data" / "owners"))

    timezone = _optional_env("BIRTHDAY_TIMEZONE", "UTC")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown BIRTHDAY_TIMEZONE: {timezone}") from exc

    leap_day_rule = _optional_env("LEAP_DAY_RULE", "feb28").lower()
    if leap_day_rule not in LEAP_DAY_RULES:
        raise ValueError(f"LEAP_DAY_RULE must be one of {list(LEAP_DAY_RULES)}")

    tick_poll_seconds = float(_optional_env("TICK_POLL_SECONDS", "60"))
    if tick_poll_seconds <= 0:
        raise ValueError("TICK_POLL_SECONDS must be positive")

    queue_size = int(_optional_env("NOTIFICATION_QUEUE_SIZE", "1000"))
    if queue_size <= 0:
        raise ValueError("NOTIFICATION_QUEUE_SIZE must be positive")

    return Settings(
        telegram_bot_token=token,
        allowed_user_ids=allowed_user_ids,
        data_dir=data_dir,
        timezone=timezone,
        send_time=parse_send_time(_optional_env("BIRTHDAY_SEND_TIME", "09:00")),
        leap_day_rule=leap_day_rule,
        tick_poll_seconds=tick_poll_seconds,
        notification_queue_size=queue_size,
        log_level=_optional_env("LOG_LEVEL", "INFO").upper(),
    )
