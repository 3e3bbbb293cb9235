from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum


TICK_INTERVAL = timedelta(hours=3)


class LeadTime(Enum):
    ON_DAY = ("on_day", timedelta(0))
    DAY_BEFORE = ("day_before", timedelta(days=1))
    ONE_WEEK_BEFORE = ("one_week_before", timedelta(days=7))
    TWO_WEEKS_BEFORE = ("two_weeks_before", timedelta(days=14))

    def __init__(self, flag: str, start: timedelta) -> None:
        self.flag = flag
        self.start = start

    @property
    def end(self) -> timedelta:
        return self.start + TICK_INTERVAL

    def enabled_for(self, record: BirthdayRecord) -> bool:
        return bool(getattr(record, self.flag))


@dataclass(frozen=True)
class BirthdayRecord:
    id: str
    owner_id: str
    month: int
    day: int
    next_occurrence: datetime
    name: str
    last_name: str | None = None
    on_day: bool = True
    day_before: bool = False
    one_week_before: bool = False
    two_weeks_before: bool = False

    @property
    def full_name(self) -> str:
        if self.last_name:
            return f"{self.name} {self.last_name}"
        return self.name

    @property
    def lead_times(self) -> tuple[LeadTime, ...]:
        return tuple(lead for lead in LeadTime if lead.enabled_for(self))


@dataclass(frozen=True)
class Notification:
    record: BirthdayRecord
    lead_time: LeadTime


@dataclass(frozen=True)
class OwnerSnapshot:
    records: list[BirthdayRecord]
    next_tick_at: datetime | None


def sort_records(records: list[BirthdayRecord]) -> list[BirthdayRecord]:
    return sorted(records, key=lambda record: record.next_occurrence)
