from __future__ import annotations

import logging
from datetime import datetime

import pytz
from aiogram import Bot, F, Router
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message
from aiogram.utils.keyboard import InlineKeyboardBuilder

from config import Settings
from db import SubscriptionStore
from formatting import queue_not_found_text, region_name, schedule_to_text, settings_to_text
from notifications import send_status_update
from providers.yasno import OPERATORS, YasnoClient
from timeutils import day_label

logger = logging.getLogger(__name__)

router = Router(name="schedule")

NOTIFY_CHOICES = (15, 30, 60, 120)

HELP_TEXT = """<b>Svitlo Tracker Bot - Довідка</b>

/region - Обрати регіон
/queue - Обрати чергу (1.1-6.2)
/schedule - Графік на сьогодні
/tomorrow - Графік на завтра
/status - Поточний статус
/subscribe - Підписатися на сповіщення
/unsubscribe - Відписатися від сповіщень
/settings - Налаштування

<b>Як користуватися:</b>
1. Оберіть регіон командою /region
2. Оберіть вашу чергу командою /queue
3. Підпишіться на сповіщення /subscribe
4. Перегляньте графік командою /schedule"""

PICK_FIRST = "Спочатку оберіть регіон (/region) та чергу (/queue)"
TRY_LATER = "Не вдалося отримати графік. Спробуйте пізніше."


# --- UI helpers ---
def kb_regions():
    kb = InlineKeyboardBuilder()
    for op in OPERATORS:
        kb.button(text=op.region, callback_data=f"region:{op.code}")
    kb.adjust(1)
    return kb.as_markup()


def kb_queues(queues: list[str]):
    kb = InlineKeyboardBuilder()
    for q in queues:
        kb.button(text=q, callback_data=f"queue:{q}")
    kb.adjust(4)
    return kb.as_markup()


def kb_notify(current: int):
    kb = InlineKeyboardBuilder()
    for minutes in NOTIFY_CHOICES:
        mark = "✅ " if minutes == current else ""
        kb.button(text=f"{mark}{minutes} хв", callback_data=f"notify:{minutes}")
    kb.adjust(4)
    return kb.as_markup()


def _now(settings: Settings) -> datetime:
    return datetime.now(pytz.timezone(settings.timezone))


async def _selection(state: FSMContext, settings: Settings):
    data = await state.get_data()
    return (
        data.get("operator_code"),
        data.get("queue_number"),
        data.get("notify_before", settings.default_notify_before),
    )


def _remember_user(store: SubscriptionStore, message: Message):
    u = message.from_user
    if u is None:
        return None
    return store.get_or_create_user(
        str(u.id),
        username=u.username,
        first_name=u.first_name,
        last_name=u.last_name,
        language_code=u.language_code or "uk",
    )


# --- commands ---
@router.message(CommandStart())
async def start(m: Message, state: FSMContext, store: SubscriptionStore, settings: Settings):
    user = _remember_user(store, m)
    if user:
        subs = store.get_user_subscriptions(user.id)
        if subs:
            await state.update_data(
                operator_code=subs[0].operator_code,
                queue_number=subs[0].queue_number,
                notify_before=subs[0].notify_before,
            )

    db_status = "✅ Сповіщення увімкнено" if store.available else "⚠️ Сповіщення недоступні (БД не підключена)"
    await m.answer(
        "👋 <b>Вітаю у Svitlo Tracker Bot!</b>\n\n"
        "Я допоможу відстежувати графіки відключень електроенергії "
        "та надсилати сповіщення перед відключеннями.\n\n"
        f"{HELP_TEXT}\n\n{db_status}\n\nПочніть з вибору регіону: /region"
    )


@router.message(Command("help"))
async def help_cmd(m: Message):
    await m.answer(HELP_TEXT)


@router.message(Command("region"))
async def region_cmd(m: Message):
    await m.answer("Оберіть ваш регіон:", reply_markup=kb_regions())


@router.message(Command("queue"))
async def queue_cmd(m: Message, state: FSMContext, client: YasnoClient, settings: Settings):
    operator_code, _, _ = await _selection(state, settings)
    if not operator_code:
        await m.answer("Спочатку оберіть регіон командою /region")
        return
    queues = await client.list_queues(operator_code)
    await m.answer("Оберіть вашу чергу:", reply_markup=kb_queues(queues))


async def send_schedule(m: Message, state: FSMContext, client: YasnoClient, settings: Settings, tomorrow: bool):
    operator_code, queue_number, _ = await _selection(state, settings)
    if not operator_code or not queue_number:
        await m.answer(PICK_FIRST)
        return

    try:
        lookup = await client.resolve(operator_code, queue_number)
    except Exception:
        logger.exception("Error fetching schedule for %s %s", operator_code, queue_number)
        await m.answer("Помилка отримання графіку. Спробуйте пізніше.")
        return

    if lookup.schedule is None:
        if lookup.operator_available:
            await m.answer(queue_not_found_text(queue_number, operator_code))
        else:
            await m.answer(TRY_LATER)
        return

    day = lookup.schedule.tomorrow if tomorrow else lookup.schedule.today
    label = day_label(_now(settings), tomorrow=tomorrow)
    await m.answer(schedule_to_text(label, queue_number, operator_code, day, lookup.no_outages))


@router.message(Command("schedule"))
async def schedule_cmd(m: Message, state: FSMContext, client: YasnoClient, settings: Settings):
    await send_schedule(m, state, client, settings, tomorrow=False)


@router.message(Command("tomorrow"))
async def tomorrow_cmd(m: Message, state: FSMContext, client: YasnoClient, settings: Settings):
    await send_schedule(m, state, client, settings, tomorrow=True)


@router.message(Command("status"))
async def status_cmd(m: Message, bot: Bot, state: FSMContext, client: YasnoClient, settings: Settings):
    operator_code, queue_number, _ = await _selection(state, settings)
    if not operator_code or not queue_number:
        await m.answer(PICK_FIRST)
        return
    await send_status_update(bot, client, str(m.chat.id), operator_code, queue_number, _now(settings))


@router.message(Command("subscribe"))
async def subscribe_cmd(m: Message, state: FSMContext, store: SubscriptionStore, settings: Settings):
    operator_code, queue_number, notify_before = await _selection(state, settings)
    if not operator_code or not queue_number:
        await m.answer(PICK_FIRST)
        return

    if not store.available:
        await m.answer("❌ Сповіщення недоступні. База даних не підключена.")
        return

    user = _remember_user(store, m)
    if not user:
        await m.answer("❌ Помилка збереження даних. Спробуйте пізніше.")
        return

    sub = store.create_or_update_subscription(user.id, operator_code, queue_number, notify_before)
    if not sub:
        await m.answer("❌ Помилка створення підписки. Спробуйте пізніше.")
        return

    await m.answer(
        "✅ <b>Підписку оформлено!</b>\n\n"
        f"📍 Регіон: {region_name(operator_code)}\n"
        f"🔢 Черга: {queue_number}\n"
        f"🔔 Сповіщення: за {sub.notify_before} хв до відключення\n\n"
        "Ви отримуватимете сповіщення перед кожним запланованим відключенням."
    )


@router.message(Command("unsubscribe"))
async def unsubscribe_cmd(m: Message, state: FSMContext, store: SubscriptionStore, settings: Settings):
    operator_code, queue_number, _ = await _selection(state, settings)
    user = store.find_user_by_identity(str(m.from_user.id)) if m.from_user else None
    subs = store.get_user_subscriptions(user.id) if user else []

    target = next(
        (s for s in subs if s.operator_code == operator_code and s.queue_number == queue_number),
        None,
    )
    if target is None or not store.deactivate_subscription(target.id):
        await m.answer("Активної підписки на цю чергу немає.")
        return

    await m.answer(f"🔕 Сповіщення для черги {queue_number} ({region_name(operator_code)}) вимкнено.")


@router.message(Command("settings"))
async def settings_cmd(m: Message, state: FSMContext, store: SubscriptionStore, settings: Settings):
    operator_code, queue_number, notify_before = await _selection(state, settings)
    await m.answer(
        settings_to_text(operator_code, queue_number, notify_before, store.available),
        reply_markup=kb_notify(notify_before),
    )


# --- callbacks ---
@router.callback_query(F.data.startswith("region:"))
async def pick_region(cb: CallbackQuery, state: FSMContext):
    _, operator_code = cb.data.split(":", 1)
    name = region_name(operator_code)
    if not name:
        await cb.answer("Невідомий регіон")
        return

    # queue belongs to the previous region
    await state.update_data(operator_code=operator_code, queue_number=None)
    await cb.answer(f"Обрано: {name}")
    await cb.message.edit_text(f"✅ Регіон: <b>{name}</b>\n\nТепер оберіть чергу: /queue")


@router.callback_query(F.data.startswith("queue:"))
async def pick_queue(cb: CallbackQuery, state: FSMContext, store: SubscriptionStore, settings: Settings):
    _, queue_number = cb.data.split(":", 1)
    await state.update_data(queue_number=queue_number)
    operator_code, _, _ = await _selection(state, settings)

    await cb.answer(f"Обрано чергу: {queue_number}")
    text = f"✅ Черга: <b>{queue_number}</b> ({region_name(operator_code)})\n\nПереглянути графік: /schedule\n"
    if store.available:
        text += "Підписатися на сповіщення: /subscribe"
    await cb.message.edit_text(text)


@router.callback_query(F.data.startswith("notify:"))
async def pick_notify(cb: CallbackQuery, state: FSMContext, store: SubscriptionStore, settings: Settings):
    _, raw = cb.data.split(":", 1)
    if not raw.isdigit() or int(raw) not in NOTIFY_CHOICES:
        await cb.answer()
        return
    notify_before = int(raw)
    await state.update_data(notify_before=notify_before)

    # keep an existing subscription for the selected queue in sync
    operator_code, queue_number, _ = await _selection(state, settings)
    user = store.find_user_by_identity(str(cb.from_user.id))
    if user and operator_code and queue_number:
        subs = store.get_user_subscriptions(user.id)
        if any(s.operator_code == operator_code and s.queue_number == queue_number for s in subs):
            store.create_or_update_subscription(user.id, operator_code, queue_number, notify_before)

    await cb.answer(f"Сповіщення за {notify_before} хв")
    await cb.message.edit_text(
        settings_to_text(operator_code, queue_number, notify_before, store.available),
        reply_markup=kb_notify(notify_before),
    )
