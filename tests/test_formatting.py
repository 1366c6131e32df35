from datetime import datetime

import pytest

from formatting import (
    alert_text,
    find_current_and_next,
    hour_statuses,
    schedule_to_text,
    settings_to_text,
    status_to_text,
)
from providers.base import DaySchedule, Outage
from timeutils import day_label, format_time_until, minutes_to_time, queue_sort_key, time_to_minutes


def day(outages, status="ScheduleApplies"):
    return DaySchedule(
        date="2026-01-11",
        outages=[Outage(start_time=s, end_time=e) for s, e in outages],
        status=status,
    )


@pytest.mark.parametrize("minutes, text", [(0, "00:00"), (240, "04:00"), (615, "10:15"), (1440, "24:00")])
def test_minutes_to_time(minutes, text):
    assert minutes_to_time(minutes) == text
    assert time_to_minutes(text) == minutes


@pytest.mark.parametrize("minutes, text", [(15, "15 хв"), (60, "1 год"), (135, "2 год 15 хв"), (0, "0 хв")])
def test_format_time_until(minutes, text):
    assert format_time_until(minutes) == text


def test_day_label():
    moment = datetime(2026, 1, 31, 12, 0)
    assert day_label(moment) == "Сьогодні, 31 січня"
    assert day_label(moment, tomorrow=True) == "Завтра, 1 лютого"


def test_queue_sort_key():
    assert sorted(["2.1", "10.1", "1.2", "1.1"], key=queue_sort_key) == ["1.1", "1.2", "2.1", "10.1"]


def test_find_current_and_next():
    outages = day([("04:00", "08:00"), ("12:00", "16:00"), ("20:00", "24:00")]).outages

    current, upcoming = find_current_and_next(outages, time_to_minutes("05:00"))
    assert current.start_time == "04:00"
    assert upcoming.start_time == "12:00"

    current, upcoming = find_current_and_next(outages, time_to_minutes("08:00"))
    assert current is None
    assert upcoming.start_time == "12:00"

    current, upcoming = find_current_and_next(outages, time_to_minutes("23:59"))
    assert current.start_time == "20:00"
    assert upcoming is None


def test_hour_statuses_mark_partial_hours():
    flags = hour_statuses(day([("04:30", "06:00")]).outages)
    assert [h for h, off in enumerate(flags) if off] == [4, 5]


def test_schedule_lists_outages_and_timeline():
    text = schedule_to_text("Сьогодні, 11 січня", "3.2", "yasno-kyiv", day([("04:00", "08:00")]))
    assert "Черга 3.2 (Київ)" in text
    assert "🔴 04:00 — 08:00 (точно)" in text
    assert "Ніч" in text and "Вечір" in text


def test_emergency_status_wins_over_outages():
    text = schedule_to_text("Сьогодні", "3.2", "yasno-kyiv",
                            day([("04:00", "08:00")], status="EmergencyShutdowns"))
    assert "АВАРІЙНІ ВІДКЛЮЧЕННЯ" in text
    assert "04:00" not in text


def test_waiting_is_not_shown_as_no_outages():
    text = schedule_to_text("Завтра", "3.2", "yasno-kyiv", day([], status="WaitingForSchedule"), no_outages=True)
    assert "ще не опублікований" in text
    assert "не заплановано" not in text


def test_no_outages_message():
    text = schedule_to_text("Сьогодні", "1.1", "yasno-dnipro", day([]), no_outages=True)
    assert "Відключень не заплановано" in text
    assert "(Дніпро)" in text


def test_status_texts():
    d = day([("08:00", "11:00")])
    assert "Зараз світла немає" in status_to_text("3.2", "yasno-kyiv", d, time_to_minutes("09:00"))

    before = status_to_text("3.2", "yasno-kyiv", d, time_to_minutes("07:00"))
    assert "Зараз світло є" in before
    assert "Наступне відключення о <b>08:00</b>" in before
    assert "1 год" in before

    after = status_to_text("3.2", "yasno-kyiv", d, time_to_minutes("12:00"))
    assert "завершені" in after

    empty = status_to_text("3.2", "yasno-kyiv", day([]), time_to_minutes("12:00"))
    assert "не заплановано" in empty


def test_status_during_emergency():
    d = day([("08:00", "11:00")], status="EmergencyShutdowns")
    text = status_to_text("3.2", "yasno-kyiv", d, time_to_minutes("09:00"))
    assert "АВАРІЙНІ" in text
    assert "Зараз світла немає" not in text


def test_alert_text():
    text = alert_text("3.2", "yasno-kyiv", Outage("08:00", "11:00"), 15)
    assert "Черга: 3.2 (Київ)" in text
    assert "<b>08:00</b>" in text and "<b>11:00</b>" in text
    assert "15 хв" in text


def test_settings_text_defaults():
    text = settings_to_text(None, None, 30, False)
    assert "Регіон: не обрано" in text
    assert "за 30 хв" in text
    assert "Недоступні" in text
