"""
Before-outage alerts.

A run looks at every active subscription, finds today's outages that start
within the subscriber's lead window and sends each of them once. The
notification log is the only dedupe state: a key that is already logged is
skipped, a failed send is not logged so a later run retries it.

Runs do not lock against each other. Two runs that both pass the log check
for the same key before either writes it will both send.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

import pytz

from db import BEFORE_OUTAGE, EMERGENCY, NotificationLog, Subscription, SubscriptionStore
from formatting import alert_text, emergency_alert_text, queue_not_found_text, status_to_text
from providers.yasno import YasnoClient
from timeutils import minutes_of_day, time_to_minutes

logger = logging.getLogger(__name__)

# dedupe time for the once-a-day emergency alert
EMERGENCY_SLOT = "00:00"


@dataclass
class NotificationResult:
    sent: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def is_alert_due(minutes_until: int, notify_before: int) -> bool:
    # started or passed outages never qualify
    return 0 < minutes_until <= notify_before


class NotificationScheduler:
    def __init__(self, bot, store: SubscriptionStore, client: YasnoClient, tz_name: str = "Europe/Kyiv"):
        self.bot = bot
        self.store = store
        self.client = client
        self.tz = pytz.timezone(tz_name)

    def _now(self, now: Optional[datetime]) -> datetime:
        if now is None:
            return datetime.now(self.tz)
        if now.tzinfo is None:
            return self.tz.localize(now)
        return now.astimezone(self.tz)

    async def run(self, now: Optional[datetime] = None) -> NotificationResult:
        result = NotificationResult()

        if not self.store.available:
            logger.info("Database not available - skipping notifications")
            return result

        now = self._now(now)
        today = now.strftime("%Y-%m-%d")
        now_minutes = minutes_of_day(now)

        subscriptions = self.store.list_active_subscriptions_with_identity()
        logger.info("Processing %d active subscriptions", len(subscriptions))

        for sub in subscriptions:
            try:
                await self.process_subscription(sub, today, now_minutes, result)
            except Exception:
                logger.exception("Error processing subscription %s", sub.id)
                result.errors += 1

        logger.info("Notification check complete: %s", result)
        return result

    async def process_subscription(self, sub: Subscription, today: str, now_minutes: int,
                                   result: NotificationResult) -> None:
        lookup = await self.client.resolve(sub.operator_code, sub.queue_number)
        schedule = lookup.schedule
        if schedule is None:
            return

        day = schedule.today
        if day.is_emergency:
            # an emergency status with nothing scheduled has nothing to warn about
            if day.outages:
                await self._deliver(sub, today, EMERGENCY_SLOT, EMERGENCY,
                                    emergency_alert_text(sub.queue_number, sub.operator_code), result)
            return

        for outage in day.effective_outages:
            minutes_until = time_to_minutes(outage.start_time) - now_minutes
            if not is_alert_due(minutes_until, sub.notify_before):
                continue
            await self._deliver(sub, today, outage.start_time, BEFORE_OUTAGE,
                                alert_text(sub.queue_number, sub.operator_code, outage, minutes_until),
                                result)

    async def _deliver(self, sub: Subscription, outage_date: str, outage_time: str,
                       notification_type: str, text: str, result: NotificationResult) -> None:
        if self.store.has_alert_been_logged(sub.id, outage_date, outage_time, notification_type):
            result.skipped += 1
            return

        try:
            await self.bot.send_message(sub.telegram_id, text)
        except Exception:
            logger.exception("Failed to send %s notification to %s", notification_type, sub.telegram_id)
            result.errors += 1
            return

        result.sent += 1
        logger.info("Sent %s notification to %s for %s %s",
                    notification_type, sub.telegram_id, outage_date, outage_time)

        logged = self.store.append_alert_log(NotificationLog(
            subscription_id=sub.id,
            outage_date=outage_date,
            outage_time=outage_time,
            notification_type=notification_type,
        ))
        if not logged:
            # the alert may go out again on the next run
            logger.warning("Could not log %s notification for subscription %s", notification_type, sub.id)
            result.errors += 1


async def send_status_update(bot, client: YasnoClient, telegram_id: str, operator_code: str,
                             queue_number: str, now: datetime) -> bool:
    try:
        lookup = await client.resolve(operator_code, queue_number)
        if lookup.schedule is None:
            if lookup.operator_available:
                text = queue_not_found_text(queue_number, operator_code)
            else:
                text = "❌ Не вдалося отримати графік. Спробуйте пізніше."
            await bot.send_message(telegram_id, text)
            return False

        text = status_to_text(queue_number, operator_code, lookup.schedule.today, minutes_of_day(now))
        await bot.send_message(telegram_id, text)
        return True
    except Exception:
        logger.exception("Error sending status update to %s", telegram_id)
        return False
