from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from birthday_reminders.date_logic import InvalidBirthdayError, from_epoch_ms, to_epoch_ms, validate_month_day
from birthday_reminders.errors import ValidationError
from birthday_reminders.models import BirthdayRecord

NAME_MAX_LENGTH = 10

FLAG_FIELDS = (
    ("onDay", "on_day", True),
    ("dayBefore", "day_before", False),
    ("oneWeekBefore", "one_week_before", False),
    ("twoWeeksBefore", "two_weeks_before", False),
)


def _required(payload: dict[str, Any], field: str) -> Any:
    if field not in payload or payload[field] is None:
        raise ValidationError(field, "is required")
    return payload[field]


def _parse_int(payload: dict[str, Any], field: str) -> int:
    value = _required(payload, field)
    # bool is an int subclass; a JSON true is not a month.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, "must be an integer")
    return value


def _parse_bool(payload: dict[str, Any], field: str, default: bool) -> bool:
    value = payload.get(field)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValidationError(field, "must be a boolean")
    return value


def parse_instant(value: Any, field: str = "nextOccurrence") -> datetime:
    if isinstance(value, bool):
        raise ValidationError(field, "must be epoch milliseconds or an ISO-8601 timestamp")
    if isinstance(value, int):
        return from_epoch_ms(value)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise ValidationError(field, "is not a valid ISO-8601 timestamp") from exc
        if parsed.tzinfo is None:
            raise ValidationError(field, "must include a UTC offset")
        return parsed.astimezone(UTC)
    raise ValidationError(field, "must be epoch milliseconds or an ISO-8601 timestamp")


def parse_name(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError("name", "must be a string")
    name = value.strip()
    if not name:
        raise ValidationError("name", "Must be at least 1 letter.")
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError("name", f"must be at most {NAME_MAX_LENGTH} characters")
    return name


def parse_record(payload: dict[str, Any], owner_id: str) -> BirthdayRecord:
    if not isinstance(payload, dict):
        raise ValidationError("record", "must be an object")

    record_id = _required(payload, "id")
    if not isinstance(record_id, str) or not record_id.strip():
        raise ValidationError("id", "must be a non-empty string")

    supplied_owner = payload.get("ownerId")
    if supplied_owner is not None and str(supplied_owner) != owner_id:
        raise ValidationError("ownerId", "does not match the requesting owner")

    month = _parse_int(payload, "month")
    day = _parse_int(payload, "day")
    if month < 1 or month > 12:
        raise ValidationError("month", "must be between 1 and 12")
    try:
        validate_month_day(month, day, allow_feb_29=True)
    except InvalidBirthdayError as exc:
        raise ValidationError("day", str(exc)) from exc

    next_occurrence = parse_instant(_required(payload, "nextOccurrence"))
    name = parse_name(_required(payload, "name"))

    last_name = payload.get("lastName")
    if last_name is not None:
        if not isinstance(last_name, str):
            raise ValidationError("lastName", "must be a string")
        last_name = last_name.strip() or None

    flags = {attr: _parse_bool(payload, field, default) for field, attr, default in FLAG_FIELDS}

    return BirthdayRecord(
        id=record_id,
        owner_id=owner_id,
        month=month,
        day=day,
        next_occurrence=next_occurrence,
        name=name,
        last_name=last_name,
        **flags,
    )


def record_to_payload(record: BirthdayRecord) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": record.id,
        "ownerId": record.owner_id,
        "month": record.month,
        "day": record.day,
        "nextOccurrence": to_epoch_ms(record.next_occurrence),
        "name": record.name,
    }
    if record.last_name is not None:
        payload["lastName"] = record.last_name
    for field, attr, _default in FLAG_FIELDS:
        payload[field] = getattr(record, attr)
    return payload
