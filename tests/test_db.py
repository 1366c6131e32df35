import sqlite3

import pytest

from config import Settings
from db import BEFORE_OUTAGE, DB, NotificationLog, SubscriptionStore, build_store


@pytest.fixture
def db(tmp_path):
    d = DB(str(tmp_path / "test.db"))
    yield d
    d.close()


def test_user_is_created_once(db):
    first = db.get_or_create_user("42", username="a", first_name="Ann")
    second = db.get_or_create_user("42", username="b")

    assert first.id == second.id
    assert second.username == "b"
    assert db.find_user_by_identity("42").id == first.id
    assert db.find_user_by_identity("43") is None


def test_resubscribe_updates_lead_time_instead_of_duplicating(db):
    user = db.get_or_create_user("42")

    a = db.create_or_update_subscription(user.id, "yasno-kyiv", "3.2", 30)
    b = db.create_or_update_subscription(user.id, "yasno-kyiv", "3.2", 60)

    assert a.id == b.id
    assert b.notify_before == 60
    subs = db.get_user_subscriptions(user.id)
    assert len(subs) == 1
    assert subs[0].notify_before == 60


def test_unsubscribe_is_soft_and_resubscribe_reactivates(db):
    user = db.get_or_create_user("42")
    sub = db.create_or_update_subscription(user.id, "yasno-kyiv", "3.2", 30)

    assert db.deactivate_subscription(sub.id) is True
    assert db.deactivate_subscription(sub.id) is False
    assert db.get_user_subscriptions(user.id) == []
    assert db.list_active_subscriptions_with_identity() == []

    again = db.create_or_update_subscription(user.id, "yasno-kyiv", "3.2", 15)
    assert again.id == sub.id
    assert again.is_active is True
    count = db.conn.execute("SELECT COUNT(*) FROM subscriptions").fetchone()[0]
    assert count == 1


def test_different_queues_are_separate_subscriptions(db):
    user = db.get_or_create_user("42")
    db.create_or_update_subscription(user.id, "yasno-kyiv", "3.2", 30)
    db.create_or_update_subscription(user.id, "yasno-dnipro", "3.2", 30)
    db.create_or_update_subscription(user.id, "yasno-kyiv", "1.1", 30)

    assert len(db.get_user_subscriptions(user.id)) == 3


def test_active_subscriptions_carry_telegram_id(db):
    u1 = db.get_or_create_user("100")
    u2 = db.get_or_create_user("200")
    db.create_or_update_subscription(u1.id, "yasno-kyiv", "1.1", 30)
    db.create_or_update_subscription(u2.id, "yasno-dnipro", "2.2", 45)

    subs = db.list_active_subscriptions_with_identity()

    assert [(s.telegram_id, s.operator_code, s.queue_number, s.notify_before) for s in subs] == [
        ("100", "yasno-kyiv", "1.1", 30),
        ("200", "yasno-dnipro", "2.2", 45),
    ]


def test_alert_log_dedupe_key(db):
    user = db.get_or_create_user("42")
    sub = db.create_or_update_subscription(user.id, "yasno-kyiv", "3.2", 30)
    key = (sub.id, "2026-01-11", "08:00", BEFORE_OUTAGE)

    assert db.has_alert_been_logged(*key) is False
    assert db.append_alert_log(NotificationLog(*key)) is True
    assert db.has_alert_been_logged(*key) is True

    # other date / time / type are independent
    assert db.has_alert_been_logged(sub.id, "2026-01-12", "08:00", BEFORE_OUTAGE) is False
    assert db.has_alert_been_logged(sub.id, "2026-01-11", "09:00", BEFORE_OUTAGE) is False
    assert db.has_alert_been_logged(sub.id, "2026-01-11", "08:00", "emergency") is False


def test_alert_log_key_is_unique(db):
    user = db.get_or_create_user("42")
    sub = db.create_or_update_subscription(user.id, "yasno-kyiv", "3.2", 30)
    entry = NotificationLog(sub.id, "2026-01-11", "08:00", BEFORE_OUTAGE)

    assert db.append_alert_log(entry) is True
    assert db.append_alert_log(entry) is True
    count = db.conn.execute("SELECT COUNT(*) FROM notification_logs").fetchone()[0]
    assert count == 1


def test_broken_connection_degrades_to_empty_results(db):
    user = db.get_or_create_user("42")
    sub = db.create_or_update_subscription(user.id, "yasno-kyiv", "3.2", 30)
    db.conn.execute("DROP TABLE notification_logs")
    db.conn.execute("DROP TABLE subscriptions")

    assert db.list_active_subscriptions_with_identity() == []
    assert db.get_user_subscriptions(user.id) == []
    assert db.create_or_update_subscription(user.id, "yasno-kyiv", "3.2", 30) is None
    assert db.has_alert_been_logged(sub.id, "2026-01-11", "08:00", BEFORE_OUTAGE) is False
    assert db.append_alert_log(NotificationLog(sub.id, "2026-01-11", "08:00", BEFORE_OUTAGE)) is False


def test_closed_connection_degrades_instead_of_raising(db):
    user = db.get_or_create_user("42")
    sub = db.create_or_update_subscription(user.id, "yasno-kyiv", "3.2", 30)
    db.conn.close()

    assert db.find_user_by_identity("42") is None
    assert db.list_active_subscriptions_with_identity() == []
    assert db.deactivate_subscription(sub.id) is False
    assert db.append_alert_log(NotificationLog(sub.id, "2026-01-11", "08:00", BEFORE_OUTAGE)) is False


def test_noop_store_is_safe():
    store = SubscriptionStore()

    assert store.available is False
    assert store.find_user_by_identity("1") is None
    assert store.get_or_create_user("1") is None
    assert store.create_or_update_subscription(1, "yasno-kyiv", "1.1", 30) is None
    assert store.get_user_subscriptions(1) == []
    assert store.deactivate_subscription(1) is False
    assert store.list_active_subscriptions_with_identity() == []
    assert store.has_alert_been_logged(1, "2026-01-11", "08:00", BEFORE_OUTAGE) is False
    assert store.append_alert_log(NotificationLog(1, "2026-01-11", "08:00", BEFORE_OUTAGE)) is False


def test_build_store_follows_persistence_flag(tmp_path):
    assert isinstance(build_store(Settings(db_path="")), SubscriptionStore)
    assert build_store(Settings(db_path="")).available is False

    store = build_store(Settings(db_path=str(tmp_path / "x.db")))
    assert isinstance(store, DB)
    store.close()


def test_build_store_survives_unopenable_path(tmp_path):
    path = tmp_path / "missing-dir" / "x.db"
    store = build_store(Settings(db_path=str(path)))
    assert store.available is False
    with pytest.raises(sqlite3.OperationalError):
        sqlite3.connect(str(path))
