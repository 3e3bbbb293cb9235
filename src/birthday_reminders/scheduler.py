from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from birthday_reminders.date_logic import advance
from birthday_reminders.errors import DispatchError, StoreError
from birthday_reminders.locks import OwnerLocks
from birthday_reminders.models import TICK_INTERVAL, BirthdayRecord, sort_records
from birthday_reminders.notifications import NotificationQueue
from birthday_reminders.record_store import RecordStore
from birthday_reminders.windows import match_all

LOGGER = logging.getLogger(__name__)


class SchedulerState(Enum):
    IDLE = "idle"
    ARMED = "armed"
    RUNNING = "running"


@dataclass
class TickResult:
    owner_id: str
    ran_at: datetime
    advanced: int = 0
    enqueued: int = 0
    failed_enqueues: int = 0
    persisted: bool = False
    next_tick_at: datetime | None = None


def tick_anchor(due_at: datetime, now: datetime, interval: timedelta = TICK_INTERVAL) -> datetime:
    """Pick the instant a due tick evaluates its windows from.

    A tick that runs a little late keeps its scheduled instant so its windows
    start where the previous tick's ended. After an outage of a full interval
    or more the wall clock is used instead.
    """
    if now - due_at < interval:
        return due_at
    return now


class ReminderScheduler:
    """Runs the periodic reminder tick for each owner's birthday records.

    The next tick instant is persisted in the record store; an external
    poller calls :meth:`run_due` and every tick re-arms the owner one
    interval later, whether or not anything fired.
    """

    def __init__(
        self,
        *,
        store: RecordStore,
        queue: NotificationQueue,
        locks: OwnerLocks,
        interval: timedelta = TICK_INTERVAL,
        leap_day_rule: str = "feb28",
    ) -> None:
        self._store = store
        self._queue = queue
        self._locks = locks
        self._interval = interval
        self._leap_day_rule = leap_day_rule
        self._running: set[str] = set()
        # Re-arm instants that could not be persisted yet.
        self._pending_arms: dict[str, datetime] = {}

    def next_tick_at(self, owner_id: str) -> datetime | None:
        pending = self._pending_arms.get(owner_id)
        if pending is not None:
            return pending
        return self._store.get_next_tick_time(owner_id)

    def state(self, owner_id: str) -> SchedulerState:
        if owner_id in self._running:
            return SchedulerState.RUNNING
        if self.next_tick_at(owner_id) is None:
            return SchedulerState.IDLE
        return SchedulerState.ARMED

    def arm(self, owner_id: str, at: datetime) -> bool:
        try:
            self._store.set_next_tick_time(owner_id, at)
        except StoreError:
            LOGGER.exception("Could not persist next tick for owner %s; holding %s in memory", owner_id, at)
            self._pending_arms[owner_id] = at
            return False

        self._pending_arms.pop(owner_id, None)
        return True

    def ensure_armed(self, owner_id: str, now: datetime) -> None:
        """Arm the first tick for an idle owner. Callers hold the owner's lock."""
        try:
            current = self.next_tick_at(owner_id)
        except StoreError:
            LOGGER.exception("Could not read next tick for owner %s; arming anyway", owner_id)
            current = None

        if current is None:
            LOGGER.info("Arming first tick for owner %s at %s", owner_id, now.isoformat())
            self.arm(owner_id, now)

    async def tick(self, owner_id: str, now: datetime) -> TickResult:
        async with self._locks.hold(owner_id):
            return await self._run_tick(owner_id, now)

    async def _run_tick(self, owner_id: str, now: datetime) -> TickResult:
        self._running.add(owner_id)
        result = TickResult(owner_id=owner_id, ran_at=now)
        try:
            records = self._store.get(owner_id)

            advanced_records: list[BirthdayRecord] = []
            for record in records:
                advanced = advance(record, now, self._leap_day_rule)
                if advanced is not record:
                    result.advanced += 1
                advanced_records.append(advanced)

            for notification in match_all(advanced_records, now):
                try:
                    await self._queue.enqueue(notification)
                except DispatchError:
                    LOGGER.warning(
                        "Could not enqueue %s reminder for record %s of owner %s",
                        notification.lead_time.name,
                        notification.record.id,
                        owner_id,
                        exc_info=True,
                    )
                    result.failed_enqueues += 1
                    continue
                result.enqueued += 1

            self._store.put(owner_id, sort_records(advanced_records))
            result.persisted = True
        except StoreError:
            LOGGER.exception("Tick for owner %s aborted; retrying at the next interval", owner_id)
        finally:
            result.next_tick_at = now + self._interval
            self.arm(owner_id, result.next_tick_at)
            self._running.discard(owner_id)

        level = logging.INFO if (result.advanced or result.enqueued or result.failed_enqueues) else logging.DEBUG
        LOGGER.log(
            level,
            "Tick for owner %s at %s: advanced=%s enqueued=%s failed=%s next=%s",
            owner_id,
            now.isoformat(),
            result.advanced,
            result.enqueued,
            result.failed_enqueues,
            result.next_tick_at.isoformat(),
        )
        return result

    async def _tick_if_due(self, owner_id: str, now: datetime) -> TickResult | None:
        async with self._locks.hold(owner_id):
            try:
                due_at = self.next_tick_at(owner_id)
            except StoreError:
                LOGGER.exception("Could not read next tick for owner %s", owner_id)
                return None

            # Another run may have ticked and re-armed this owner meanwhile.
            if due_at is None or due_at > now:
                return None
            return await self._run_tick(owner_id, tick_anchor(due_at, now, self._interval))

    async def run_due(self, now: datetime) -> int:
        """Run every owner whose persisted next tick is at or before ``now``."""
        try:
            owners = set(self._store.owners())
        except StoreError:
            LOGGER.exception("Could not list owners")
            return 0
        owners.update(self._pending_arms)

        results = await asyncio.gather(*(self._tick_if_due(owner_id, now) for owner_id in sorted(owners)))
        ran = sum(1 for result in results if result is not None)
        if ran:
            LOGGER.info("Ran %s due ticks at %s", ran, now.isoformat())
        return ran
