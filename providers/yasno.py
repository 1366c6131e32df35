from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, List, Optional

import aiohttp
import pytz

from timeutils import minutes_to_time, queue_sort_key
from .base import (
    WAITING_FOR_SCHEDULE,
    DaySchedule,
    OperatorConfig,
    OperatorSchedule,
    Outage,
    QueueLookup,
    QueueSchedule,
    ScheduleSnapshot,
)

logger = logging.getLogger(__name__)

API_URL = "https://app.yasno.ua/api/blackout-service/public/shutdowns"
PLANNED_OUTAGES_PATH = "/regions/{region_id}/dsos/{dso_id}/planned-outages"

OPERATORS: List[OperatorConfig] = [
    OperatorConfig(code="yasno-kyiv", name="YASNO Київ", region="Київ", region_id=25, dso_id=902),
    OperatorConfig(code="yasno-dnipro", name="YASNO Дніпро", region="Дніпро", region_id=3, dso_id=301),
]

# Used when the live list is unavailable
DEFAULT_QUEUES = [f"{g}.{s}" for g in range(1, 7) for s in (1, 2)]

SLOT_DEFINITE = "Definite"
MINUTES_IN_DAY = 1440


def parse_slots_to_outages(slots: Any) -> List[Outage]:
    """
    Raw slot: {"start": 240, "end": 480, "type": "Definite" | "NotPlanned"}
    start/end are minutes from midnight (0..1440).

    Only "Definite" slots are outages. "NotPlanned" ones are dropped.
    """
    if not isinstance(slots, list):
        return []

    parsed = []
    for slot in slots:
        if not isinstance(slot, dict) or slot.get("type") != SLOT_DEFINITE:
            continue
        start, end = slot.get("start"), slot.get("end")
        if type(start) is not int or type(end) is not int:
            logger.warning("Skipping slot with bad bounds: %r", slot)
            continue
        if not (0 <= start < end <= MINUTES_IN_DAY):
            logger.warning("Skipping slot out of range: %r", slot)
            continue
        parsed.append((start, end))

    parsed.sort(key=lambda se: se[0])

    # overlapping or touching slots are one continuous outage
    merged: List[List[int]] = []
    for start, end in parsed:
        if merged and start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])

    return [
        Outage(start_time=minutes_to_time(start), end_time=minutes_to_time(end), is_confirmed=True)
        for start, end in merged
    ]


def parse_day_schedule(day: Any, fallback_date: str) -> DaySchedule:
    if not isinstance(day, dict):
        return DaySchedule(date=fallback_date)

    raw_date = day.get("date")
    date = raw_date.split("T")[0] if isinstance(raw_date, str) and raw_date else fallback_date

    status = day.get("status")
    if not isinstance(status, str):
        status = None

    outages = parse_slots_to_outages(day.get("slots"))
    if status == WAITING_FOR_SCHEDULE and outages:
        logger.warning("Dropping %d slot(s) from %s, schedule not published yet", len(outages), date)
        outages = []

    return DaySchedule(date=date, outages=outages, status=status)


def has_any_outages(operators: List[OperatorSchedule]) -> bool:
    return any(q.has_outages for op in operators for q in op.queues.values())


class YasnoClient:
    """
    Fetches planned outages for the configured operators and resolves
    a single (operator, queue) pair. There is no per-queue endpoint
    upstream, so every lookup is a full fetch.
    """
    id = "yasno"

    def __init__(
        self,
        base_url: str = API_URL,
        timeout: float = 25,
        tz_name: str = "Europe/Kyiv",
        operators: Optional[List[OperatorConfig]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.tz = pytz.timezone(tz_name)
        self.operators = list(operators or OPERATORS)

    def operator_config(self, code: str) -> Optional[OperatorConfig]:
        return next((op for op in self.operators if op.code == code), None)

    def url_for(self, op: OperatorConfig) -> str:
        return self.base_url + PLANNED_OUTAGES_PATH.format(region_id=op.region_id, dso_id=op.dso_id)

    async def _fetch(self, url: str) -> Any:
        headers = {
            "Accept": "application/json",
            "User-Agent": "SvitloTracker/1.0",
        }
        async with aiohttp.ClientSession(headers=headers) as s:
            async with s.get(url, timeout=aiohttp.ClientTimeout(total=self.timeout)) as r:
                r.raise_for_status()
                return await r.json(content_type=None)

    async def fetch_operator(self, op: OperatorConfig) -> Optional[OperatorSchedule]:
        try:
            data = await self._fetch(self.url_for(op))
        except aiohttp.ClientResponseError as e:
            logger.error("YASNO API error for %s: %s", op.code, e.status)
            return None
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error("Error fetching schedule for %s: %r", op.code, e)
            return None

        if not isinstance(data, dict):
            logger.error("Unexpected payload for %s: %s", op.code, type(data).__name__)
            return None

        now = datetime.now(self.tz)
        fallback_date = now.strftime("%Y-%m-%d")

        queues = {}
        for queue_number, group in data.items():
            # keys are like "1.1", "1.2", "2.1"
            group = group if isinstance(group, dict) else {}
            queues[queue_number] = QueueSchedule(
                queue_number=queue_number,
                today=parse_day_schedule(group.get("today"), fallback_date),
                tomorrow=parse_day_schedule(group.get("tomorrow"), fallback_date),
            )

        return OperatorSchedule(
            operator_code=op.code,
            operator_name=op.name,
            region=op.region,
            queues=queues,
            last_updated=now.isoformat(),
        )

    async def fetch_all(self) -> ScheduleSnapshot:
        results = await asyncio.gather(*(self.fetch_operator(op) for op in self.operators))
        operators = [op for op in results if op is not None]

        no_outages = not has_any_outages(operators)
        if no_outages:
            logger.info("No outages scheduled for %d operator(s)", len(operators))

        return ScheduleSnapshot(operators=operators, no_outages=no_outages)

    async def resolve(self, operator_code: str, queue_number: str) -> QueueLookup:
        snapshot = await self.fetch_all()
        operator = snapshot.get(operator_code)

        if operator is None:
            return QueueLookup(schedule=None, no_outages=snapshot.no_outages, operator_available=False)

        schedule = operator.queues.get(queue_number)
        if schedule is None:
            return QueueLookup(schedule=None, no_outages=False)

        return QueueLookup(schedule=schedule, no_outages=snapshot.no_outages)

    async def list_queues(self, operator_code: str) -> List[str]:
        snapshot = await self.fetch_all()
        operator = snapshot.get(operator_code)
        if operator is None or not operator.queues:
            return list(DEFAULT_QUEUES)
        return sorted(operator.queues.keys(), key=queue_sort_key)
