import functools
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

logger = logging.getLogger(__name__)

BEFORE_OUTAGE = "before_outage"
EMERGENCY = "emergency"


@dataclass
class User:
    id: int
    telegram_id: str
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    language_code: str = "uk"


@dataclass
class Subscription:
    id: int
    user_id: int
    operator_code: str
    queue_number: str
    notify_before: int
    is_active: bool
    created_at: str = ""
    updated_at: str = ""
    # filled only by list_active_subscriptions_with_identity()
    telegram_id: Optional[str] = None


@dataclass
class NotificationLog:
    subscription_id: int
    outage_date: str          # "2026-01-11"
    outage_time: str          # "04:00"
    notification_type: str    # "before_outage", "emergency"
    sent_at: str = ""


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class SubscriptionStore:
    """
    Persistence used by the bot and the notification scheduler.

    This base class is the "no database" variant: every call is a no-op
    returning an empty result, so the bot keeps working as a read-only
    schedule viewer.
    """
    available = False

    def find_user_by_identity(self, telegram_id: str) -> Optional[User]:
        return None

    def get_or_create_user(self, telegram_id: str, username: Optional[str] = None,
                           first_name: Optional[str] = None, last_name: Optional[str] = None,
                           language_code: Optional[str] = None) -> Optional[User]:
        return None

    def create_or_update_subscription(self, user_id: int, operator_code: str,
                                      queue_number: str, notify_before: int = 30) -> Optional[Subscription]:
        return None

    def get_user_subscriptions(self, user_id: int) -> List[Subscription]:
        return []

    def deactivate_subscription(self, subscription_id: int) -> bool:
        return False

    def list_active_subscriptions_with_identity(self) -> List[Subscription]:
        return []

    def has_alert_been_logged(self, subscription_id: int, outage_date: str,
                              outage_time: str, notification_type: str) -> bool:
        return False

    def append_alert_log(self, entry: NotificationLog) -> bool:
        return False

    def close(self) -> None:
        pass


def _degrade(default):
    """Turns sqlite failures into the empty result of the no-op store."""
    def wrap(fn):
        @functools.wraps(fn)
        def inner(self, *args, **kwargs):
            try:
                return fn(self, *args, **kwargs)
            except sqlite3.Error:
                logger.exception("DB operation %s failed", fn.__name__)
                try:
                    self.conn.rollback()
                except sqlite3.Error:
                    logger.warning("Rollback after %s failed", fn.__name__)
                return default() if callable(default) else default
        return inner
    return wrap


SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    telegram_id TEXT NOT NULL UNIQUE,
    username TEXT,
    first_name TEXT,
    last_name TEXT,
    language_code TEXT DEFAULT 'uk',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS subscriptions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    operator_code TEXT NOT NULL,
    queue_number TEXT NOT NULL,
    notify_before INTEGER NOT NULL DEFAULT 30,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, operator_code, queue_number)
);
CREATE TABLE IF NOT EXISTS notification_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subscription_id INTEGER NOT NULL REFERENCES subscriptions(id),
    outage_date TEXT NOT NULL,
    outage_time TEXT NOT NULL,
    notification_type TEXT NOT NULL,
    sent_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS notification_logs_key
    ON notification_logs (subscription_id, outage_date, outage_time, notification_type);
"""

SUBSCRIPTION_COLUMNS = "id, user_id, operator_code, queue_number, notify_before, is_active, created_at, updated_at"


def _subscription(row) -> Subscription:
    sub = Subscription(*row[:8])
    sub.is_active = bool(sub.is_active)
    if len(row) > 8:
        sub.telegram_id = row[8]
    return sub


class DB(SubscriptionStore):
    available = True

    def __init__(self, path: str = "bot.db"):
        self.conn = sqlite3.connect(path, check_same_thread=False)
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    # ---------- users ----------
    @_degrade(None)
    def find_user_by_identity(self, telegram_id: str) -> Optional[User]:
        cur = self.conn.execute("""
        SELECT id, telegram_id, username, first_name, last_name, language_code
        FROM users WHERE telegram_id=?
        """, (str(telegram_id),))
        row = cur.fetchone()
        return User(*row) if row else None

    @_degrade(None)
    def get_or_create_user(self, telegram_id: str, username: Optional[str] = None,
                           first_name: Optional[str] = None, last_name: Optional[str] = None,
                           language_code: Optional[str] = None) -> Optional[User]:
        now = _utcnow()
        self.conn.execute("""
        INSERT INTO users(telegram_id, username, first_name, last_name, language_code, created_at, updated_at)
        VALUES(?,?,?,?,?,?,?)
        ON CONFLICT(telegram_id) DO UPDATE SET
          username=excluded.username,
          first_name=excluded.first_name,
          last_name=excluded.last_name,
          updated_at=excluded.updated_at
        """, (str(telegram_id), username, first_name, last_name, language_code or "uk", now, now))
        self.conn.commit()
        return self.find_user_by_identity(telegram_id)

    # ---------- subscriptions ----------
    @_degrade(None)
    def create_or_update_subscription(self, user_id: int, operator_code: str,
                                      queue_number: str, notify_before: int = 30) -> Optional[Subscription]:
        now = _utcnow()
        self.conn.execute("""
        INSERT INTO subscriptions(user_id, operator_code, queue_number, notify_before, is_active, created_at, updated_at)
        VALUES(?,?,?,?,1,?,?)
        ON CONFLICT(user_id, operator_code, queue_number) DO UPDATE SET
          notify_before=excluded.notify_before,
          is_active=1,
          updated_at=excluded.updated_at
        """, (user_id, operator_code, queue_number, notify_before, now, now))
        self.conn.commit()
        cur = self.conn.execute(f"""
        SELECT {SUBSCRIPTION_COLUMNS} FROM subscriptions
        WHERE user_id=? AND operator_code=? AND queue_number=?
        """, (user_id, operator_code, queue_number))
        row = cur.fetchone()
        return _subscription(row) if row else None

    @_degrade(list)
    def get_user_subscriptions(self, user_id: int) -> List[Subscription]:
        cur = self.conn.execute(f"""
        SELECT {SUBSCRIPTION_COLUMNS} FROM subscriptions
        WHERE user_id=? AND is_active=1 ORDER BY id
        """, (user_id,))
        return [_subscription(r) for r in cur.fetchall()]

    @_degrade(False)
    def deactivate_subscription(self, subscription_id: int) -> bool:
        cur = self.conn.execute("""
        UPDATE subscriptions SET is_active=0, updated_at=? WHERE id=? AND is_active=1
        """, (_utcnow(), subscription_id))
        self.conn.commit()
        return cur.rowcount > 0

    @_degrade(list)
    def list_active_subscriptions_with_identity(self) -> List[Subscription]:
        cols = ", ".join(f"s.{c.strip()}" for c in SUBSCRIPTION_COLUMNS.split(","))
        cur = self.conn.execute(f"""
        SELECT {cols}, u.telegram_id
        FROM subscriptions s JOIN users u ON u.id = s.user_id
        WHERE s.is_active=1 ORDER BY s.id
        """)
        return [_subscription(r) for r in cur.fetchall()]

    # ---------- notification log ----------
    @_degrade(False)
    def has_alert_been_logged(self, subscription_id: int, outage_date: str,
                              outage_time: str, notification_type: str) -> bool:
        cur = self.conn.execute("""
        SELECT 1 FROM notification_logs
        WHERE subscription_id=? AND outage_date=? AND outage_time=? AND notification_type=?
        LIMIT 1
        """, (subscription_id, outage_date, outage_time, notification_type))
        return cur.fetchone() is not None

    @_degrade(False)
    def append_alert_log(self, entry: NotificationLog) -> bool:
        # a concurrent run may already have written the same key
        self.conn.execute("""
        INSERT OR IGNORE INTO notification_logs(subscription_id, outage_date, outage_time, notification_type, sent_at)
        VALUES(?,?,?,?,?)
        """, (entry.subscription_id, entry.outage_date, entry.outage_time,
              entry.notification_type, entry.sent_at or _utcnow()))
        self.conn.commit()
        return True


def build_store(settings) -> SubscriptionStore:
    if not settings.persistence_available:
        logger.warning("DB_PATH not set - subscriptions and notifications are disabled")
        return SubscriptionStore()
    try:
        return DB(settings.db_path)
    except sqlite3.Error:
        logger.exception("Could not open database %s - running without persistence", settings.db_path)
        return SubscriptionStore()
