from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from telegram import Update
from telegram.ext import CallbackContext, CommandHandler

from birthday_reminders.date_logic import first_occurrence, to_epoch_ms, validate_month_day
from birthday_reminders.errors import (
    BirthdayError,
    ConflictError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from birthday_reminders.models import BirthdayRecord, LeadTime, OwnerSnapshot
from birthday_reminders.service import BirthdayService
from birthday_reminders.settings import Settings
from birthday_reminders.validation import record_to_payload

LOGGER = logging.getLogger(__name__)

SHORT_ID_LENGTH = 8

LEAD_TIME_ALIASES = {
    "day": LeadTime.ON_DAY,
    "day-of": LeadTime.ON_DAY,
    "0": LeadTime.ON_DAY,
    "0d": LeadTime.ON_DAY,
    "1d": LeadTime.DAY_BEFORE,
    "1": LeadTime.DAY_BEFORE,
    "7d": LeadTime.ONE_WEEK_BEFORE,
    "1w": LeadTime.ONE_WEEK_BEFORE,
    "7": LeadTime.ONE_WEEK_BEFORE,
    "14d": LeadTime.TWO_WEEKS_BEFORE,
    "2w": LeadTime.TWO_WEEKS_BEFORE,
    "14": LeadTime.TWO_WEEKS_BEFORE,
}

LEAD_TIME_LABELS = {
    LeadTime.ON_DAY: "day-of",
    LeadTime.DAY_BEFORE: "1d",
    LeadTime.ONE_WEEK_BEFORE: "1w",
    LeadTime.TWO_WEEKS_BEFORE: "2w",
}

FLAG_PAYLOAD_KEYS = {
    LeadTime.ON_DAY: "onDay",
    LeadTime.DAY_BEFORE: "dayBefore",
    LeadTime.ONE_WEEK_BEFORE: "oneWeekBefore",
    LeadTime.TWO_WEEKS_BEFORE: "twoWeeksBefore",
}

ADD_USAGE = "Usage: /add <name> <MM-DD> [last name] [reminders=day,1d,1w,2w]"
EDIT_USAGE = "Usage: /edit <id> <name> <MM-DD> [last name] [reminders=day,1d,1w,2w]"
REMIND_USAGE = "Usage: /remind <id> <day,1d,1w,2w | none>"
DELETE_USAGE = "Usage: /delete <id>"


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class HandlerDependencies:
    settings: Settings
    service: BirthdayService
    clock: Callable[[], datetime] = field(default=_utc_now)


@dataclass(frozen=True)
class RecordArgs:
    name: str
    month: int
    day: int
    last_name: str | None
    lead_times: frozenset[LeadTime] | None


@dataclass(frozen=True)
class BirthdayListRow:
    short_id: str
    name: str
    days_until: int
    next_date: date
    lead_times: tuple[LeadTime, ...]


def is_authorized(update: Update, settings: Settings) -> bool:
    effective_user = update.effective_user
    if effective_user is None:
        return False
    if not settings.allowed_user_ids:
        return True
    return effective_user.id in settings.allowed_user_ids


def owner_id_for(update: Update) -> str:
    return str(update.effective_user.id)


async def _deny_unauthorized(update: Update) -> None:
    if update.effective_message:
        await update.effective_message.reply_text("This bot is restricted to its configured users.")


def parse_month_day_text(raw_text: str) -> tuple[int, int]:
    match = re.fullmatch(r"(\d{1,2})-(\d{1,2})", raw_text.strip())
    if not match:
        raise ValueError("Birthday must use MM-DD")
    month = int(match.group(1))
    day = int(match.group(2))
    validate_month_day(month, day, allow_feb_29=True)
    return month, day


def parse_lead_times_text(raw_text: str) -> frozenset[LeadTime]:
    text = raw_text.strip().lower()
    if text in {"none", "off"}:
        return frozenset()

    lead_times: set[LeadTime] = set()
    for token in text.split(","):
        cleaned = token.strip()
        if not cleaned:
            continue
        lead_time = LEAD_TIME_ALIASES.get(cleaned)
        if lead_time is None:
            raise ValueError(f"Unknown reminder '{cleaned}'. Use day, 1d, 1w, 2w or none")
        lead_times.add(lead_time)

    if not lead_times:
        raise ValueError("Provide at least one reminder or none")
    return frozenset(lead_times)


def parse_record_args(args: list[str]) -> RecordArgs:
    if len(args) < 2:
        raise ValueError("A name and a MM-DD birthday are required")

    name = args[0]
    month, day = parse_month_day_text(args[1])

    lead_times: frozenset[LeadTime] | None = None
    last_name_parts: list[str] = []
    for token in args[2:]:
        if token.lower().startswith("reminders="):
            lead_times = parse_lead_times_text(token.split("=", 1)[1])
        else:
            last_name_parts.append(token)

    last_name = " ".join(last_name_parts) or None
    return RecordArgs(name=name, month=month, day=day, last_name=last_name, lead_times=lead_times)


def _flags_payload(lead_times: frozenset[LeadTime]) -> dict[str, bool]:
    return {key: lead_time in lead_times for lead_time, key in FLAG_PAYLOAD_KEYS.items()}


def build_record_payload(
    record_id: str,
    owner_id: str,
    args: RecordArgs,
    now: datetime,
    settings: Settings,
    existing: BirthdayRecord | None = None,
) -> dict[str, Any]:
    if existing is not None and (existing.month, existing.day) == (args.month, args.day):
        next_occurrence = existing.next_occurrence
    else:
        next_occurrence = first_occurrence(
            args.month, args.day, now, settings.tz, settings.send_time, settings.leap_day_rule
        )

    payload: dict[str, Any] = {
        "id": record_id,
        "ownerId": owner_id,
        "month": args.month,
        "day": args.day,
        "nextOccurrence": to_epoch_ms(next_occurrence),
        "name": args.name,
        "lastName": args.last_name,
    }
    if args.lead_times is not None:
        payload.update(_flags_payload(args.lead_times))
    elif existing is not None:
        payload.update(_flags_payload(frozenset(existing.lead_times)))
    return payload


def resolve_record_id(records: list[BirthdayRecord], token: str) -> str:
    for record in records:
        if record.id == token:
            return token

    matches = [record.id for record in records if record.id.startswith(token)]
    if len(matches) > 1:
        raise ValueError(f"Id prefix '{token}' matches {len(matches)} birthdays, use more characters")
    if matches:
        return matches[0]
    return token


def _format_lead_times(lead_times: tuple[LeadTime, ...]) -> str:
    if not lead_times:
        return "none"
    return ", ".join(LEAD_TIME_LABELS[lead_time] for lead_time in lead_times)


def build_list_rows(snapshot: OwnerSnapshot, now: datetime, settings: Settings) -> list[BirthdayListRow]:
    today = now.astimezone(settings.tz).date()
    rows: list[BirthdayListRow] = []
    for record in snapshot.records:
        next_date = record.next_occurrence.astimezone(settings.tz).date()
        rows.append(
            BirthdayListRow(
                short_id=record.id[:SHORT_ID_LENGTH],
                name=record.full_name,
                days_until=(next_date - today).days,
                next_date=next_date,
                lead_times=record.lead_times,
            )
        )
    return rows


def _render_list_message(rows: list[BirthdayListRow], next_tick_at: datetime | None, settings: Settings) -> str:
    lines = [f"Tracked birthdays ({len(rows)})", "Sorted by soonest:"]

    for index, row in enumerate(rows, start=1):
        lines.append(f"{index}. {row.name} [{row.short_id}]")
        details = [
            f"In {row.days_until}d",
            f"Next {row.next_date.isoformat()}",
            f"Reminders {_format_lead_times(row.lead_times)}",
        ]
        lines.append(f"   {' | '.join(details)}")
        lines.append("")

    if next_tick_at is not None:
        local = next_tick_at.astimezone(settings.tz)
        lines.append(f"Next reminder check: {local.strftime('%Y-%m-%d %H:%M')} {settings.timezone}")
    return "\n".join(lines).rstrip()


def _error_message(exc: BirthdayError) -> str:
    if isinstance(exc, ValidationError):
        return f"Invalid {exc.field}: {exc.reason}"
    if isinstance(exc, ConflictError):
        return "A birthday with that id already exists."
    if isinstance(exc, NotFoundError):
        return "No birthday with that id was found. Use /list to see ids."
    if isinstance(exc, StoreError):
        return "Could not reach birthday storage right now. Please try again."
    return str(exc)


def _render_help() -> str:
    return (
        "Commands:\n"
        "/add <name> <MM-DD> [last name] [reminders=...] - Track a birthday\n"
        "/edit <id> <name> <MM-DD> [last name] [reminders=...] - Replace a birthday\n"
        "/remind <id> <reminders> - Change which reminders are sent\n"
        "/delete <id> - Stop tracking a birthday\n"
        "/list - Show tracked birthdays, soonest first\n"
        "/help - Show this help message\n\n"
        "Names are 1-10 characters. Ids can be shortened to the prefix shown in /list.\n"
        "Reminders: day (on the day), 1d, 1w, 2w, or none. Default: day"
    )


def _deps(context: CallbackContext) -> HandlerDependencies:
    return context.application.bot_data["handler_deps"]


async def help_command(update: Update, context: CallbackContext) -> None:
    deps = _deps(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return
    await update.effective_message.reply_text(_render_help())


async def list_command(update: Update, context: CallbackContext) -> None:
    deps = _deps(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    try:
        snapshot = await deps.service.read(owner_id_for(update))
    except BirthdayError as exc:
        await update.effective_message.reply_text(_error_message(exc))
        return

    if not snapshot.records:
        await update.effective_message.reply_text("No birthdays are currently tracked. Use /add to start.")
        return

    rows = build_list_rows(snapshot, deps.clock(), deps.settings)
    await update.effective_message.reply_text(_render_list_message(rows, snapshot.next_tick_at, deps.settings))


async def add_command(update: Update, context: CallbackContext) -> None:
    deps = _deps(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    owner_id = owner_id_for(update)
    now = deps.clock()
    try:
        args = parse_record_args(list(context.args or []))
        payload = build_record_payload(str(uuid.uuid4()), owner_id, args, now, deps.settings)
        record = await deps.service.create(owner_id, payload, now)
    except BirthdayError as exc:
        await update.effective_message.reply_text(_error_message(exc))
        return
    except ValueError as exc:
        await update.effective_message.reply_text(f"{exc}\n{ADD_USAGE}")
        return

    next_date = record.next_occurrence.astimezone(deps.settings.tz).date().isoformat()
    await update.effective_message.reply_text(
        f"Saved {record.full_name} [{record.id[:SHORT_ID_LENGTH]}].\n"
        f"Next birthday {next_date} | Reminders {_format_lead_times(record.lead_times)}"
    )


async def edit_command(update: Update, context: CallbackContext) -> None:
    deps = _deps(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    owner_id = owner_id_for(update)
    raw_args = list(context.args or [])
    if not raw_args:
        await update.effective_message.reply_text(EDIT_USAGE)
        return

    try:
        snapshot = await deps.service.read(owner_id)
        record_id = resolve_record_id(snapshot.records, raw_args[0])
        existing = await deps.service.get(owner_id, record_id)
        args = parse_record_args(raw_args[1:])
        payload = build_record_payload(record_id, owner_id, args, deps.clock(), deps.settings, existing)
        record = await deps.service.update(owner_id, payload)
    except BirthdayError as exc:
        await update.effective_message.reply_text(_error_message(exc))
        return
    except ValueError as exc:
        await update.effective_message.reply_text(f"{exc}\n{EDIT_USAGE}")
        return

    await update.effective_message.reply_text(f"Updated {record.full_name} [{record.id[:SHORT_ID_LENGTH]}].")


async def remind_command(update: Update, context: CallbackContext) -> None:
    deps = _deps(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    owner_id = owner_id_for(update)
    raw_args = list(context.args or [])
    if len(raw_args) != 2:
        await update.effective_message.reply_text(REMIND_USAGE)
        return

    try:
        snapshot = await deps.service.read(owner_id)
        record_id = resolve_record_id(snapshot.records, raw_args[0])
        existing = await deps.service.get(owner_id, record_id)
        lead_times = parse_lead_times_text(raw_args[1])
        payload = record_to_payload(existing)
        payload.update(_flags_payload(lead_times))
        record = await deps.service.update(owner_id, payload)
    except BirthdayError as exc:
        await update.effective_message.reply_text(_error_message(exc))
        return
    except ValueError as exc:
        await update.effective_message.reply_text(f"{exc}\n{REMIND_USAGE}")
        return

    await update.effective_message.reply_text(
        f"Reminders for {record.full_name}: {_format_lead_times(record.lead_times)}"
    )


async def delete_command(update: Update, context: CallbackContext) -> None:
    deps = _deps(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    owner_id = owner_id_for(update)
    raw_args = list(context.args or [])
    record_id = raw_args[0] if raw_args else None
    try:
        if record_id is not None:
            snapshot = await deps.service.read(owner_id)
            record_id = resolve_record_id(snapshot.records, record_id)
        await deps.service.delete(owner_id, record_id)
    except BirthdayError as exc:
        await update.effective_message.reply_text(_error_message(exc))
        return
    except ValueError as exc:
        await update.effective_message.reply_text(f"{exc}\n{DELETE_USAGE}")
        return

    await update.effective_message.reply_text("Birthday deleted.")


def build_handlers() -> list:
    return [
        CommandHandler(["help", "start"], help_command),
        CommandHandler("list", list_command),
        CommandHandler("add", add_command),
        CommandHandler("edit", edit_command),
        CommandHandler("remind", remind_command),
        CommandHandler("delete", delete_command),
    ]
