from __future__ import annotations

from dataclasses import replace
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from birthday_reminders.models import BirthdayRecord

LEAP_DAY_RULES = ("feb28", "mar1")
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class InvalidBirthdayError(ValueError):
    pass


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def validate_month_day(month: int, day: int, *, allow_feb_29: bool = True) -> None:
    if month < 1 or month > 12:
        raise InvalidBirthdayError(f"Invalid month: {month}")

    if day < 1 or day > 31:
        raise InvalidBirthdayError(f"Invalid day: {day}")

    year = 2000 if allow_feb_29 else 2001
    try:
        date(year, month, day)
    except ValueError as exc:
        raise InvalidBirthdayError(f"Invalid month/day combination: {month:02d}-{day:02d}") from exc


def birthday_date_for_year(month: int, day: int, year: int, leap_day_rule: str) -> date:
    if month == 2 and day == 29 and not is_leap_year(year):
        if leap_day_rule == "feb28":
            return date(year, 2, 28)
        if leap_day_rule == "mar1":
            return date(year, 3, 1)
        raise InvalidBirthdayError(f"Unsupported leap day rule: {leap_day_rule}")
    return date(year, month, day)


def next_birthday(month: int, day: int, today: date, leap_day_rule: str) -> date:
    this_year = birthday_date_for_year(month, day, today.year, leap_day_rule)
    if this_year >= today:
        return this_year
    return birthday_date_for_year(month, day, today.year + 1, leap_day_rule)


def first_occurrence(
    month: int,
    day: int,
    now: datetime,
    tz: tzinfo,
    send_time: time,
    leap_day_rule: str,
) -> datetime:
    """Return the next instant at ``send_time`` local time on the birthday.

    The result is in UTC and always strictly after ``now``.
    """
    local_date = next_birthday(month, day, now.astimezone(tz).date(), leap_day_rule)
    candidate = datetime.combine(local_date, send_time, tzinfo=tz)
    if candidate <= now:
        local_date = birthday_date_for_year(month, day, local_date.year + 1, leap_day_rule)
        candidate = datetime.combine(local_date, send_time, tzinfo=tz)
    return candidate.astimezone(UTC)


def add_one_year(instant: datetime, month: int, day: int, leap_day_rule: str = "feb28") -> datetime:
    """Move ``instant`` to the same birthday one year later, keeping the time of day.

    The target date comes from the record's ``month``/``day`` so a Feb 29
    birthday returns to Feb 29 in leap years. A calendar shift of up to one
    day between the instant and the birthday (a local send time stored in
    UTC) is carried over.
    """
    anchor_year = min(
        (instant.year - 1, instant.year, instant.year + 1),
        key=lambda year: abs(instant.date() - birthday_date_for_year(month, day, year, leap_day_rule)),
    )
    shift = instant.date() - birthday_date_for_year(month, day, anchor_year, leap_day_rule)
    target = birthday_date_for_year(month, day, anchor_year + 1, leap_day_rule) + shift
    return datetime.combine(target, instant.timetz())


def advance(record: BirthdayRecord, now: datetime, leap_day_rule: str = "feb28") -> BirthdayRecord:
    """Roll an elapsed ``next_occurrence`` forward by whole years.

    Records whose occurrence is still ahead of ``now`` (or exactly at it) are
    returned unchanged, which makes repeated calls with the same ``now`` a
    no-op after the first.
    """
    if record.next_occurrence >= now:
        return record

    occurrence = record.next_occurrence
    # Catch up every elapsed year in one pass so the occurrence never stays in the past.
    while occurrence < now:
        occurrence = add_one_year(occurrence, record.month, record.day, leap_day_rule)
    return replace(record, next_occurrence=occurrence)


def to_epoch_ms(instant: datetime) -> int:
    return (instant - EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value)
