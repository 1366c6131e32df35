from __future__ import annotations

from datetime import datetime, timedelta

# Ukrainian month names, genitive
MONTHS_UK = [
    "січня", "лютого", "березня", "квітня", "травня", "червня",
    "липня", "серпня", "вересня", "жовтня", "листопада", "грудня",
]


def minutes_to_time(minutes: int) -> str:
    """240 -> "04:00", 1440 -> "24:00"."""
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"


def time_to_minutes(t: str) -> int:
    h, m = t.split(":")
    return int(h) * 60 + int(m)


def minutes_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def format_time_until(minutes: int) -> str:
    h, m = divmod(max(minutes, 0), 60)
    if h > 0 and m > 0:
        return f"{h} год {m} хв"
    if h > 0:
        return f"{h} год"
    return f"{m} хв"


def format_date_uk(moment: datetime) -> str:
    return f"{moment.day} {MONTHS_UK[moment.month - 1]}"


def day_label(moment: datetime, tomorrow: bool = False) -> str:
    if tomorrow:
        return f"Завтра, {format_date_uk(moment + timedelta(days=1))}"
    return f"Сьогодні, {format_date_uk(moment)}"


def queue_sort_key(queue_number: str) -> tuple:
    # "1.2" -> (1, 2); non-numeric parts sort last
    parts = []
    for p in queue_number.split("."):
        parts.append(int(p) if p.isdigit() else 10 ** 6)
    if len(parts) < 2:
        parts.append(0)
    return tuple(parts)
