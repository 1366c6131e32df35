from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from providers.yasno import API_URL

BOT_MODES = ("polling", "webhook")


@dataclass(frozen=True)
class Settings:
    bot_token: str = ""
    db_path: str = "bot.db"
    timezone: str = "Europe/Kyiv"

    # Notifications
    poll_seconds: int = 300
    internal_scheduler: bool = True
    default_notify_before: int = 30
    cron_secret: str = ""

    # Provider
    yasno_api_url: str = API_URL
    request_timeout: int = 25

    # Delivery
    bot_mode: str = "polling"
    webhook_url: str = ""
    webhook_path: str = "/api/telegram/webhook"
    webhook_secret: str = ""

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @property
    def persistence_available(self) -> bool:
        return bool(self.db_path)

    @property
    def bot_configured(self) -> bool:
        return bool(self.bot_token)


def _int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected integer.") from e


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw not in {"0", "false", "no", "off"}


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    load_dotenv(dotenv_path=dotenv_path, override=False)

    bot_token = (os.getenv("BOT_TOKEN") or os.getenv("TELEGRAM_BOT_TOKEN") or "").strip()

    bot_mode = os.getenv("BOT_MODE", "polling").strip().lower()
    if bot_mode not in BOT_MODES:
        raise RuntimeError(f"Invalid BOT_MODE value: {bot_mode!r}. Expected one of {BOT_MODES}.")

    poll_seconds = _int("POLL_SECONDS", 300)
    if poll_seconds < 30:
        raise RuntimeError("POLL_SECONDS must be at least 30")

    return Settings(
        bot_token=bot_token,
        db_path=os.getenv("DB_PATH", "bot.db").strip(),
        timezone=os.getenv("TIMEZONE", "Europe/Kyiv").strip(),
        poll_seconds=poll_seconds,
        internal_scheduler=_flag("INTERNAL_SCHEDULER", True),
        default_notify_before=_int("DEFAULT_NOTIFY_BEFORE", 30),
        cron_secret=os.getenv("CRON_SECRET", "").strip(),
        yasno_api_url=os.getenv("YASNO_API_URL", API_URL).strip(),
        request_timeout=_int("REQUEST_TIMEOUT", 25),
        bot_mode=bot_mode,
        webhook_url=os.getenv("WEBHOOK_URL", "").strip(),
        webhook_path=os.getenv("WEBHOOK_PATH", "/api/telegram/webhook").strip(),
        webhook_secret=os.getenv("WEBHOOK_SECRET", "").strip(),
        host=os.getenv("HOST", "0.0.0.0").strip(),
        port=_int("PORT", 8080),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )
