from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from aiogram import Bot, Dispatcher
from aiogram.webhook.aiohttp_server import SimpleRequestHandler
from aiohttp import web

from config import Settings
from db import SubscriptionStore
from notifications import NotificationScheduler
from providers.yasno import YasnoClient

logger = logging.getLogger(__name__)

SETTINGS = web.AppKey("settings", Settings)
CLIENT = web.AppKey("client", YasnoClient)
BOT = web.AppKey("bot", object)
SCHEDULER = web.AppKey("scheduler", object)


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status: int, error: str, **extra) -> web.Response:
    return web.json_response({"error": error, **extra}, status=status)


async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


# --- schedule ---
async def get_schedule(request: web.Request) -> web.Response:
    client = request.app[CLIENT]
    operator_code = request.query.get("operator")
    queue_number = request.query.get("queue")

    try:
        if operator_code and queue_number:
            lookup = await client.resolve(operator_code, queue_number)

            if lookup.schedule is None:
                if client.operator_config(operator_code) and not lookup.operator_available:
                    return _error(503, "Графік тимчасово недоступний. Спробуйте пізніше.", code="UNAVAILABLE")
                return _error(404, "Графік не знайдено", code="NOT_FOUND")

            return web.json_response({
                "success": True,
                "data": lookup.schedule.to_dict(),
                "noOutages": lookup.no_outages,
                "meta": {
                    "operatorCode": operator_code,
                    "queueNumber": queue_number,
                    "fetchedAt": _utc_iso(),
                },
            })

        snapshot = await client.fetch_all()
        return web.json_response({
            "success": True,
            "data": [op.to_dict() for op in snapshot.operators],
            "noOutages": snapshot.no_outages,
            "meta": {"fetchedAt": _utc_iso()},
        })
    except Exception as e:
        logger.exception("Schedule API error")
        return _error(500, "Помилка завантаження графіку", code="FETCH_ERROR", details=str(e))


# --- cron ---
def _authorized(request: web.Request, secret: str) -> bool:
    if not secret:
        return True
    return request.headers.get("Authorization") == f"Bearer {secret}"


async def run_notifications(request: web.Request) -> web.Response:
    settings = request.app[SETTINGS]
    if not _authorized(request, settings.cron_secret):
        return _error(401, "Unauthorized")

    scheduler = request.app[SCHEDULER]
    if scheduler is None:
        return _error(500, "Bot not configured - BOT_TOKEN missing")

    try:
        logger.info("Starting notification check...")
        result = await scheduler.run()
    except Exception as e:
        logger.exception("Cron notification error")
        return _error(500, "Failed to process notifications", details=str(e))

    return web.json_response({
        "success": True,
        "result": result.to_dict(),
        "timestamp": _utc_iso(),
    })


# --- telegram ---
async def webhook_probe(request: web.Request) -> web.Response:
    return web.json_response({"status": "Telegram webhook endpoint"})


async def webhook_info(request: web.Request) -> web.Response:
    bot = request.app[BOT]
    if bot is None:
        return _error(500, "Bot not configured")
    try:
        info = await bot.get_webhook_info()
    except Exception as e:
        return _error(500, "Failed to get webhook info", details=str(e))
    return web.json_response(info.model_dump(mode="json", exclude_none=True))


async def webhook_set(request: web.Request) -> web.Response:
    settings = request.app[SETTINGS]
    bot = request.app[BOT]
    if bot is None:
        return _error(500, "Bot not configured")

    url = request.query.get("url")
    if not url and request.can_read_body:
        try:
            body = await request.json()
        except ValueError:
            body = {}
        if isinstance(body, dict):
            url = body.get("url")
    url = url or settings.webhook_url

    if not url:
        return _error(400, "Webhook URL required. Provide ?url= param or WEBHOOK_URL env var")

    try:
        await bot.set_webhook(url, secret_token=settings.webhook_secret or None)
    except Exception as e:
        logger.exception("Setup webhook error")
        return _error(500, "Failed to set webhook", details=str(e))
    return web.json_response({"success": True, "webhook": url})


async def webhook_delete(request: web.Request) -> web.Response:
    bot = request.app[BOT]
    if bot is None:
        return _error(500, "Bot not configured")
    try:
        await bot.delete_webhook()
    except Exception as e:
        return _error(500, "Failed to delete webhook", details=str(e))
    return web.json_response({"success": True, "message": "Webhook deleted"})


def create_app(
    settings: Settings,
    client: YasnoClient,
    store: SubscriptionStore,
    bot: Optional[Bot] = None,
    dp: Optional[Dispatcher] = None,
    scheduler: Optional[NotificationScheduler] = None,
) -> web.Application:
    app = web.Application()
    app[SETTINGS] = settings
    app[CLIENT] = client
    app[BOT] = bot
    if scheduler is None and bot is not None:
        scheduler = NotificationScheduler(bot, store, client, settings.timezone)
    app[SCHEDULER] = scheduler

    app.router.add_get("/health", health)
    app.router.add_get("/api/schedule", get_schedule)
    app.router.add_get("/api/cron/notifications", run_notifications)
    app.router.add_post("/api/cron/notifications", run_notifications)

    app.router.add_get("/api/telegram/setup", webhook_info)
    app.router.add_post("/api/telegram/setup", webhook_set)
    app.router.add_delete("/api/telegram/setup", webhook_delete)

    app.router.add_get(settings.webhook_path, webhook_probe)
    if bot is not None and dp is not None:
        SimpleRequestHandler(
            dispatcher=dp,
            bot=bot,
            secret_token=settings.webhook_secret or None,
        ).register(app, path=settings.webhook_path)

    return app
