from __future__ import annotations

import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import Settings, load_settings
from db import build_store
from handlers import router
from notifications import NotificationScheduler
from providers import build_client
from web import create_app

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def build_bot(settings: Settings) -> Bot | None:
    if not settings.bot_configured:
        logger.warning("BOT_TOKEN is empty - running as a schedule viewer only")
        return None
    return Bot(settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))


def build_dispatcher(settings: Settings, store, client) -> Dispatcher:
    # handlers receive these by parameter name
    dp = Dispatcher(settings=settings, store=store, client=client)
    dp.include_router(router)
    return dp


async def run_notifications_job(notifier: NotificationScheduler):
    try:
        await notifier.run()
    except Exception:
        logger.exception("Error in notification job")


async def main():
    settings = load_settings()
    setup_logging(settings.log_level)

    store = build_store(settings)
    client = build_client(settings)
    bot = build_bot(settings)
    dp = build_dispatcher(settings, store, client) if bot else None
    notifier = NotificationScheduler(bot, store, client, settings.timezone) if bot else None

    webhook_mode = bot is not None and settings.bot_mode == "webhook"
    app = create_app(settings, client, store, bot=bot, dp=dp if webhook_mode else None, scheduler=notifier)

    scheduler = AsyncIOScheduler(timezone=settings.timezone)
    if notifier and settings.internal_scheduler:
        scheduler.add_job(run_notifications_job, "interval", seconds=settings.poll_seconds, args=[notifier])
        scheduler.start()
        logger.info("SCHEDULER STARTED (every %ss)", settings.poll_seconds)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.host, settings.port)
    await site.start()
    logger.info("HTTP server listening on %s:%s", settings.host, settings.port)

    try:
        if bot is None:
            await asyncio.Event().wait()
        elif webhook_mode:
            if settings.webhook_url:
                await bot.set_webhook(settings.webhook_url, secret_token=settings.webhook_secret or None)
                logger.info("Webhook set to %s", settings.webhook_url)
            await asyncio.Event().wait()
        else:
            await bot.delete_webhook()
            await dp.start_polling(bot)
    finally:
        if scheduler.running:
            scheduler.shutdown(wait=False)
        await runner.cleanup()
        if bot:
            await bot.session.close()
        store.close()


if __name__ == "__main__":
    asyncio.run(main())
