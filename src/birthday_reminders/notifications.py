from __future__ import annotations

import asyncio
import hashlib
import logging
from datetime import tzinfo

from telegram import Bot

from birthday_reminders.errors import DispatchError
from birthday_reminders.models import LeadTime, Notification

LOGGER = logging.getLogger(__name__)

DEFAULT_ENQUEUE_TIMEOUT_SECONDS = 1.0

TEMPLATES: dict[LeadTime, tuple[str, ...]] = {
    LeadTime.ON_DAY: (
        "🎂 Today is {person_name}'s birthday!\nDate: {date}",
        "🎉 {person_name} celebrates today.\nDate: {date}\nSend your wishes.",
        "🥳 Birthday day for {person_name}.\nDate: {date}",
        "🎈 Don't forget: {person_name}'s birthday is today.\nDate: {date}",
    ),
    LeadTime.DAY_BEFORE: (
        "⏳ {person_name}'s birthday is tomorrow.\nDate: {date}",
        "🎁 One day to go until {person_name}'s birthday.\nDate: {date}",
        "🗓️ Tomorrow: {person_name}'s birthday.\nDate: {date}\nLast chance to plan.",
    ),
    LeadTime.ONE_WEEK_BEFORE: (
        "📆 {person_name}'s birthday is one week away.\nDate: {date}",
        "🎈 Seven days until {person_name}'s birthday.\nDate: {date}",
        "🛍️ A week left to find something for {person_name}.\nDate: {date}",
    ),
    LeadTime.TWO_WEEKS_BEFORE: (
        "📅 {person_name}'s birthday is in two weeks.\nDate: {date}",
        "🗓️ Fourteen days until {person_name}'s birthday.\nDate: {date}",
        "✉️ Two weeks to go for {person_name}.\nDate: {date}\nPlenty of time to post a card.",
    ),
}


def _select_template(notification: Notification, occurrence_date: str) -> str:
    templates = TEMPLATES[notification.lead_time]
    seed = "|".join((notification.record.id, occurrence_date, notification.lead_time.name))
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    index = int.from_bytes(digest[:4], "big") % len(templates)
    return templates[index]


def format_notification(notification: Notification, tz: tzinfo) -> str:
    occurrence_date = notification.record.next_occurrence.astimezone(tz).date().isoformat()
    template = _select_template(notification, occurrence_date)
    return template.format(person_name=notification.record.full_name, date=occurrence_date)


def _chat_id(owner_id: str) -> int | str:
    if owner_id.lstrip("-").isdigit():
        return int(owner_id)
    return owner_id


class NotificationQueue:
    """Bounded outbound queue between the scheduler and the dispatcher."""

    def __init__(self, maxsize: int = 1000, *, enqueue_timeout: float = DEFAULT_ENQUEUE_TIMEOUT_SECONDS) -> None:
        self._queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=maxsize)
        self._enqueue_timeout = enqueue_timeout
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    async def enqueue(self, notification: Notification) -> None:
        if self._closed:
            raise DispatchError("Notification queue is closed")
        try:
            await asyncio.wait_for(self._queue.put(notification), timeout=self._enqueue_timeout)
        except TimeoutError as exc:
            raise DispatchError(
                f"Notification queue full, dropped {notification.lead_time.name} for {notification.record.id}"
            ) from exc

    async def get(self) -> Notification:
        return await self._queue.get()

    def get_nowait(self) -> Notification:
        return self._queue.get_nowait()

    def task_done(self) -> None:
        self._queue.task_done()

    def close(self) -> None:
        self._closed = True


class NotificationDispatcher:
    """Drains the outbound queue and sends one Telegram message per notification.

    Delivery is best effort: a failed send is logged and dropped.
    """

    def __init__(self, *, queue: NotificationQueue, bot: Bot, tz: tzinfo) -> None:
        self._queue = queue
        self._bot = bot
        self._tz = tz

    async def deliver(self, notification: Notification) -> None:
        text = format_notification(notification, self._tz)
        await self._bot.send_message(chat_id=_chat_id(notification.record.owner_id), text=text)

    async def _process(self, notification: Notification) -> bool:
        try:
            await self.deliver(notification)
        except Exception:
            LOGGER.exception(
                "Dropping %s reminder for record %s of owner %s",
                notification.lead_time.name,
                notification.record.id,
                notification.record.owner_id,
            )
            return False
        finally:
            self._queue.task_done()

        LOGGER.info(
            "Delivered %s reminder for record %s",
            notification.lead_time.name,
            notification.record.id,
        )
        return True

    async def drain(self) -> int:
        delivered = 0
        while not self._queue.empty():
            notification = self._queue.get_nowait()
            if await self._process(notification):
                delivered += 1
        return delivered

    async def run(self) -> None:
        LOGGER.info("Notification dispatcher started")
        while True:
            notification = await self._queue.get()
            await self._process(notification)
