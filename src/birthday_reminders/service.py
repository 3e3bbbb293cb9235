from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from birthday_reminders.errors import ConflictError, NotFoundError, ValidationError
from birthday_reminders.locks import OwnerLocks
from birthday_reminders.models import BirthdayRecord, OwnerSnapshot, sort_records
from birthday_reminders.record_store import RecordStore
from birthday_reminders.scheduler import ReminderScheduler
from birthday_reminders.validation import parse_record

LOGGER = logging.getLogger(__name__)


def _index_of(records: list[BirthdayRecord], record_id: str) -> int | None:
    for index, record in enumerate(records):
        if record.id == record_id:
            return index
    return None


class BirthdayService:
    """Create, read, update and delete one owner's birthday records.

    Each operation loads the whole set, checks it, and writes it back once,
    under the same per-owner lock the scheduler ticks with.
    """

    def __init__(self, *, store: RecordStore, scheduler: ReminderScheduler, locks: OwnerLocks) -> None:
        self._store = store
        self._scheduler = scheduler
        self._locks = locks

    async def create(self, owner_id: str, payload: dict[str, Any], now: datetime) -> BirthdayRecord:
        record = parse_record(payload, owner_id)

        async with self._locks.hold(owner_id):
            records = self._store.get(owner_id)
            if _index_of(records, record.id) is not None:
                raise ConflictError(record.id)

            self._store.put(owner_id, sort_records([*records, record]))
            self._scheduler.ensure_armed(owner_id, now)

        LOGGER.info("Created birthday %s for owner %s", record.id, owner_id)
        return record

    async def read(self, owner_id: str) -> OwnerSnapshot:
        async with self._locks.hold(owner_id):
            records = self._store.get(owner_id)
            next_tick_at = self._scheduler.next_tick_at(owner_id)
        return OwnerSnapshot(records=records, next_tick_at=next_tick_at)

    async def get(self, owner_id: str, record_id: str) -> BirthdayRecord:
        snapshot = await self.read(owner_id)
        index = _index_of(snapshot.records, record_id)
        if index is None:
            raise NotFoundError(record_id)
        return snapshot.records[index]

    async def update(self, owner_id: str, payload: dict[str, Any]) -> BirthdayRecord:
        record = parse_record(payload, owner_id)

        async with self._locks.hold(owner_id):
            records = self._store.get(owner_id)
            index = _index_of(records, record.id)
            if index is None:
                raise NotFoundError(record.id)

            updated = list(records)
            updated[index] = record
            self._store.put(owner_id, sort_records(updated))

        LOGGER.info("Updated birthday %s for owner %s", record.id, owner_id)
        return record

    async def delete(self, owner_id: str, record_id: str | None) -> None:
        if record_id is None or not str(record_id).strip():
            raise ValidationError("id", "birthdayId not supplied.")
        if not isinstance(record_id, str):
            raise ValidationError("id", "must be a string")

        async with self._locks.hold(owner_id):
            records = self._store.get(owner_id)
            if _index_of(records, record_id) is None:
                raise NotFoundError(record_id)

            remaining = [record for record in records if record.id != record_id]
            self._store.put(owner_id, sort_records(remaining))

        LOGGER.info("Deleted birthday %s for owner %s", record_id, owner_id)
