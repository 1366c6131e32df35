from __future__ import annotations

from dataclasses import replace
from typing import List, Optional

import pytest

from db import NotificationLog, Subscription, SubscriptionStore, User
from providers.base import DaySchedule, Outage, QueueLookup, QueueSchedule
from providers.yasno import YasnoClient


class InMemoryStore(SubscriptionStore):
    """Dict-backed store with the same contract as the sqlite one."""
    available = True

    def __init__(self):
        self.users: List[User] = []
        self.subscriptions: List[Subscription] = []
        self.logs: List[NotificationLog] = []
        self.fail_append = False

    def find_user_by_identity(self, telegram_id: str) -> Optional[User]:
        return next((u for u in self.users if u.telegram_id == str(telegram_id)), None)

    def get_or_create_user(self, telegram_id, username=None, first_name=None, last_name=None, language_code=None):
        user = self.find_user_by_identity(telegram_id)
        if user is None:
            user = User(id=len(self.users) + 1, telegram_id=str(telegram_id), username=username,
                        first_name=first_name, last_name=last_name, language_code=language_code or "uk")
            self.users.append(user)
        return user

    def create_or_update_subscription(self, user_id, operator_code, queue_number, notify_before=30):
        for s in self.subscriptions:
            if (s.user_id, s.operator_code, s.queue_number) == (user_id, operator_code, queue_number):
                s.notify_before = notify_before
                s.is_active = True
                return s
        sub = Subscription(id=len(self.subscriptions) + 1, user_id=user_id, operator_code=operator_code,
                           queue_number=queue_number, notify_before=notify_before, is_active=True)
        self.subscriptions.append(sub)
        return sub

    def get_user_subscriptions(self, user_id):
        return [s for s in self.subscriptions if s.user_id == user_id and s.is_active]

    def deactivate_subscription(self, subscription_id):
        for s in self.subscriptions:
            if s.id == subscription_id and s.is_active:
                s.is_active = False
                return True
        return False

    def list_active_subscriptions_with_identity(self):
        by_id = {u.id: u for u in self.users}
        return [
            replace(s, telegram_id=by_id[s.user_id].telegram_id)
            for s in self.subscriptions if s.is_active and s.user_id in by_id
        ]

    def has_alert_been_logged(self, subscription_id, outage_date, outage_time, notification_type):
        key = (subscription_id, outage_date, outage_time, notification_type)
        return any(
            (e.subscription_id, e.outage_date, e.outage_time, e.notification_type) == key
            for e in self.logs
        )

    def append_alert_log(self, entry):
        if self.fail_append:
            return False
        self.logs.append(entry)
        return True


class StubClient(YasnoClient):
    """Resolver returning a canned queue schedule."""

    def __init__(self, schedule: Optional[QueueSchedule] = None, error: Optional[Exception] = None,
                 operator_available: bool = True):
        super().__init__()
        self.schedule = schedule
        self.error = error
        self.operator_available = operator_available
        self.calls = 0

    async def resolve(self, operator_code, queue_number):
        self.calls += 1
        if self.error:
            raise self.error
        return QueueLookup(schedule=self.schedule, no_outages=False, operator_available=self.operator_available)


def make_queue(today_outages, status="ScheduleApplies", queue_number="3.2"):
    outages = [Outage(start_time=s, end_time=e) for s, e in today_outages]
    return QueueSchedule(
        queue_number=queue_number,
        today=DaySchedule(date="2026-01-11", outages=outages, status=status),
        tomorrow=DaySchedule(date="2026-01-12", status="WaitingForSchedule"),
    )


def raw_day(slots, status="ScheduleApplies", date="2026-01-11T00:00:00+02:00"):
    return {"date": date, "status": status, "slots": slots}


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def subscribed(store):
    user = store.get_or_create_user("1001", username="tester")
    sub = store.create_or_update_subscription(user.id, "yasno-kyiv", "3.2", 30)
    return store, sub
