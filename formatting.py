from __future__ import annotations
from typing import List, Optional, Tuple

from providers.base import DaySchedule, Outage
from providers.yasno import OPERATORS
from timeutils import format_time_until, time_to_minutes

REGION_NAMES = {op.code: op.region for op in OPERATORS}

TIMELINE_PERIODS = [
    ("Ніч", 0, 6),
    ("Ранок", 6, 12),
    ("День", 12, 18),
    ("Вечір", 18, 24),
]


def region_name(operator_code: Optional[str]) -> str:
    return REGION_NAMES.get(operator_code or "", "")


def queue_header(queue_number: str, operator_code: str) -> str:
    return f"Черга {queue_number} ({region_name(operator_code)})"


def find_current_and_next(outages: List[Outage], now_minutes: int) -> Tuple[Optional[Outage], Optional[Outage]]:
    """Returns (outage in progress, first outage still ahead)."""
    current = None
    upcoming = None
    for o in outages:
        start, end = time_to_minutes(o.start_time), time_to_minutes(o.end_time)
        if start <= now_minutes < end:
            current = o
        elif now_minutes < start and upcoming is None:
            upcoming = o
    return current, upcoming


def hour_statuses(outages: List[Outage]) -> List[bool]:
    """24 flags, True when any outage overlaps that hour."""
    spans = [(time_to_minutes(o.start_time), time_to_minutes(o.end_time)) for o in outages]
    return [
        any(h * 60 < end and (h + 1) * 60 > start for start, end in spans)
        for h in range(24)
    ]


def timeline_to_text(outages: List[Outage]) -> str:
    off = hour_statuses(outages)
    lines = []
    for label, start, end in TIMELINE_PERIODS:
        hours = " ".join(f"{h:2d}" for h in range(start, end))
        blocks = "  ".join("🔴" if off[h] else "🟢" for h in range(start, end))
        lines.append(f"<code>{label:<5} {hours}</code>")
        lines.append(f"<code>      {blocks}</code>")
    lines.append("")
    lines.append("🟢 світло є  🔴 немає світла")
    return "\n".join(lines)


def emergency_text(title: str, queue_number: str, operator_code: str) -> str:
    return "\n".join([
        f"⚠️ <b>{title}</b>",
        queue_header(queue_number, operator_code),
        "",
        "🚨 <b>АВАРІЙНІ ВІДКЛЮЧЕННЯ</b>",
        "",
        "Графіки не діють. Відключення можуть відбуватися у будь-який час.",
        "",
        "Слідкуйте за оновленнями.",
    ])


def schedule_to_text(date_label: str, queue_number: str, operator_code: str,
                     day: DaySchedule, no_outages: bool = False) -> str:
    # status wins over whatever slots came along with it
    if day.is_emergency:
        return emergency_text(date_label, queue_number, operator_code)

    if day.is_waiting:
        return "\n".join([
            f"⏳ <b>{date_label}</b>",
            queue_header(queue_number, operator_code),
            "",
            "Графік ще не опублікований.",
            "Перевірте пізніше.",
        ])

    if no_outages or not day.outages:
        return "\n".join([
            f"🎉 <b>{date_label}</b>",
            queue_header(queue_number, operator_code),
            "",
            "✨ Відключень не заплановано!",
            "Світло буде цілодобово.",
        ])

    lines = [
        f"📅 <b>{date_label}</b>",
        queue_header(queue_number, operator_code),
        "",
        "<b>Заплановані відключення:</b>",
    ]
    for o in day.outages:
        icon, note = ("🔴", "точно") if o.is_confirmed else ("🟡", "можливо")
        lines.append(f"{icon} {o.start_time} — {o.end_time} ({note})")

    lines.append("")
    lines.append("<b>Графік:</b>")
    lines.append(timeline_to_text(day.outages))
    return "\n".join(lines)


def status_to_text(queue_number: str, operator_code: str, day: DaySchedule, now_minutes: int) -> str:
    if day.is_emergency:
        return emergency_text("АВАРІЙНІ ВІДКЛЮЧЕННЯ", queue_number, operator_code)

    outages = day.effective_outages
    current, upcoming = find_current_and_next(outages, now_minutes)

    if current:
        until_power = time_to_minutes(current.end_time) - now_minutes
        return "\n".join([
            "🔴 <b>Зараз світла немає</b>",
            queue_header(queue_number, operator_code),
            "",
            f"⏱ Світло з'явиться о <b>{current.end_time}</b>",
            f"Через {format_time_until(until_power)}",
        ])

    lines = [
        "🟢 <b>Зараз світло є</b>",
        queue_header(queue_number, operator_code),
        "",
    ]
    if upcoming:
        until_outage = time_to_minutes(upcoming.start_time) - now_minutes
        lines.append(f"⚠️ Наступне відключення о <b>{upcoming.start_time}</b>")
        lines.append(f"Через {format_time_until(until_outage)}")
    elif day.is_waiting:
        lines.append("⏳ Графік на сьогодні ще не опублікований.")
    elif not outages:
        lines.append("✨ Сьогодні відключень не заплановано!")
    else:
        lines.append("✅ Всі відключення на сьогодні завершені")
    return "\n".join(lines)


def alert_text(queue_number: str, operator_code: str, outage: Outage, minutes_until: int) -> str:
    return "\n".join([
        "⚠️ <b>Увага! Скоро відключення</b>",
        "",
        f"🔢 Черга: {queue_number} ({region_name(operator_code)})",
        f"⏰ Відключення о <b>{outage.start_time}</b>",
        f"⏱ Через {format_time_until(minutes_until)}",
        "",
        f"Світло буде відсутнє до <b>{outage.end_time}</b>",
    ])


def emergency_alert_text(queue_number: str, operator_code: str) -> str:
    return "\n".join([
        "🚨 <b>Аварійні відключення</b>",
        "",
        f"🔢 Черга: {queue_number} ({region_name(operator_code)})",
        "Графіки сьогодні не діють. Світло можуть вимкнути у будь-який час.",
    ])


def queue_not_found_text(queue_number: str, operator_code: str) -> str:
    return f"❓ Черги {queue_number} немає у графіку ({region_name(operator_code)}). Оберіть іншу: /queue"


def settings_to_text(operator_code: Optional[str], queue_number: Optional[str],
                     notify_before: int, notifications_available: bool) -> str:
    status = "✅ Активні" if notifications_available else "❌ Недоступні"
    return "\n".join([
        "⚙️ <b>Ваші налаштування</b>",
        "",
        f"📍 Регіон: {region_name(operator_code) or 'не обрано'}",
        f"🔢 Черга: {queue_number or 'не обрано'}",
        f"🔔 Сповіщення: за {notify_before} хв до відключення",
        f"📊 Статус сповіщень: {status}",
        "",
        "Змінити час сповіщення можна кнопками нижче.",
        "/region - змінити регіон",
        "/queue - змінити чергу",
        "/subscribe - оновити підписку",
        "/unsubscribe - відписатися",
    ])
