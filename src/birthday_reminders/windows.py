"""Lead-time windows for deciding which reminders fire on a tick.

Each lead time owns a window of exactly one tick interval, offset from the
tick instant. A window is open at both ends: an occurrence exactly at
``now + start`` or ``now + end`` does not fire on that tick.
"""

from __future__ import annotations

from datetime import datetime

from birthday_reminders.models import BirthdayRecord, LeadTime, Notification


def window_bounds(lead_time: LeadTime, now: datetime) -> tuple[datetime, datetime]:
    return now + lead_time.start, now + lead_time.end


def in_window(lead_time: LeadTime, occurrence: datetime, now: datetime) -> bool:
    start, end = window_bounds(lead_time, now)
    return start < occurrence < end


def match(record: BirthdayRecord, now: datetime) -> frozenset[LeadTime]:
    return frozenset(
        lead_time
        for lead_time in LeadTime
        if lead_time.enabled_for(record) and in_window(lead_time, record.next_occurrence, now)
    )


def match_all(records: list[BirthdayRecord], now: datetime) -> list[Notification]:
    notifications: list[Notification] = []
    for record in records:
        fired = match(record, now)
        # LeadTime declaration order keeps the output deterministic.
        for lead_time in LeadTime:
            if lead_time in fired:
                notifications.append(Notification(record=record, lead_time=lead_time))
    return notifications
