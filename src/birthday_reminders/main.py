from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import UTC, datetime

from telegram.ext import Application, CallbackContext

from birthday_reminders.bot_handlers import HandlerDependencies, build_handlers
from birthday_reminders.locks import OwnerLocks
from birthday_reminders.notifications import NotificationDispatcher, NotificationQueue
from birthday_reminders.record_store import JsonRecordStore
from birthday_reminders.scheduler import ReminderScheduler
from birthday_reminders.service import BirthdayService
from birthday_reminders.settings import Settings, load_settings

LOGGER = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every Telegram long-poll request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def poll_due_ticks(context: CallbackContext) -> None:
    scheduler: ReminderScheduler = context.application.bot_data["scheduler"]
    await scheduler.run_due(datetime.now(UTC))


async def startup(application: Application) -> None:
    dispatcher: NotificationDispatcher = application.bot_data["dispatcher"]
    application.bot_data["dispatcher_task"] = asyncio.create_task(dispatcher.run(), name="notification-dispatcher")

    # Catch up on ticks that fell due while the process was down.
    scheduler: ReminderScheduler = application.bot_data["scheduler"]
    await scheduler.run_due(datetime.now(UTC))


async def shutdown(application: Application) -> None:
    queue: NotificationQueue = application.bot_data["queue"]
    queue.close()

    task: asyncio.Task | None = application.bot_data.pop("dispatcher_task", None)
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    dispatcher: NotificationDispatcher = application.bot_data["dispatcher"]
    delivered = await dispatcher.drain()
    if delivered:
        LOGGER.info("Delivered %s queued reminders during shutdown", delivered)


def build_application(settings: Settings) -> Application:
    application = (
        Application.builder()
        .token(settings.telegram_bot_token)
        .post_init(startup)
        .post_stop(shutdown)
        .build()
    )

    store = JsonRecordStore(settings.data_dir)
    queue = NotificationQueue(maxsize=settings.notification_queue_size)
    locks = OwnerLocks()
    scheduler = ReminderScheduler(
        store=store,
        queue=queue,
        locks=locks,
        leap_day_rule=settings.leap_day_rule,
    )
    service = BirthdayService(store=store, scheduler=scheduler, locks=locks)
    dispatcher = NotificationDispatcher(queue=queue, bot=application.bot, tz=settings.tz)

    application.bot_data["queue"] = queue
    application.bot_data["scheduler"] = scheduler
    application.bot_data["dispatcher"] = dispatcher
    application.bot_data["handler_deps"] = HandlerDependencies(settings=settings, service=service)

    for handler in build_handlers():
        application.add_handler(handler)

    application.job_queue.run_repeating(
        poll_due_ticks,
        interval=settings.tick_poll_seconds,
        first=settings.tick_poll_seconds,
        name="birthday-reminder-ticks",
    )
    return application


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    settings.data_dir.mkdir(parents=True, exist_ok=True)

    application = build_application(settings)
    LOGGER.info("Starting birthday reminder bot, data in %s", settings.data_dir)
    application.run_polling()


if __name__ == "__main__":
    main()
