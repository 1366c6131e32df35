from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional

# Schedule statuses as reported by YASNO
SCHEDULE_APPLIES = "ScheduleApplies"
WAITING_FOR_SCHEDULE = "WaitingForSchedule"
EMERGENCY_SHUTDOWNS = "EmergencyShutdowns"

# Outage types as defined by the energy ministry
OUTAGE_PLANNED = "planned"
OUTAGE_EMERGENCY = "emergency"
OUTAGE_STABILIZATION = "stabilization"


@dataclass(frozen=True)
class Outage:
    start_time: str             # "08:00"
    end_time: str               # "11:00", "24:00" for end of day
    is_confirmed: bool = True   # definite vs possible
    type: str = OUTAGE_PLANNED
    status: str = "scheduled"   # scheduled / active / completed / cancelled

    def to_dict(self) -> dict:
        return {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "type": self.type,
            "isConfirmed": self.is_confirmed,
            "status": self.status,
        }


@dataclass(frozen=True)
class DaySchedule:
    date: str                        # "2026-01-11"
    outages: List[Outage] = field(default_factory=list)
    status: Optional[str] = None     # None when the provider sent no day at all

    @property
    def is_emergency(self) -> bool:
        return self.status == EMERGENCY_SHUTDOWNS

    @property
    def is_waiting(self) -> bool:
        return self.status == WAITING_FOR_SCHEDULE

    @property
    def effective_outages(self) -> List[Outage]:
        """Outages a consumer may act on: none while the schedule does not apply."""
        if self.is_emergency or self.is_waiting:
            return []
        return list(self.outages)

    def to_dict(self) -> dict:
        data = {
            "date": self.date,
            "outages": [o.to_dict() for o in self.outages],
        }
        if self.status is not None:
            data["status"] = self.status
        return data


@dataclass(frozen=True)
class QueueSchedule:
    queue_number: str    # "3.2"
    today: DaySchedule
    tomorrow: DaySchedule

    @property
    def has_outages(self) -> bool:
        return bool(self.today.outages or self.tomorrow.outages)

    def to_dict(self) -> dict:
        return {
            "queueNumber": self.queue_number,
            "today": self.today.to_dict(),
            "tomorrow": self.tomorrow.to_dict(),
        }


@dataclass(frozen=True)
class OperatorSchedule:
    operator_code: str                  # "yasno-kyiv"
    operator_name: str                  # "YASNO Київ"
    region: str                         # "Київ"
    queues: Dict[str, QueueSchedule]
    last_updated: str                   # ISO timestamp of the fetch

    def to_dict(self) -> dict:
        return {
            "operatorCode": self.operator_code,
            "operatorName": self.operator_name,
            "region": self.region,
            "queues": {k: q.to_dict() for k, q in self.queues.items()},
            "lastUpdated": self.last_updated,
        }


@dataclass(frozen=True)
class OperatorConfig:
    code: str          # internal code (e.g. "yasno-kyiv")
    name: str          # "YASNO Київ"
    region: str        # "Київ"
    region_id: int
    dso_id: int


@dataclass(frozen=True)
class ScheduleSnapshot:
    operators: List[OperatorSchedule]
    no_outages: bool

    def get(self, operator_code: str) -> Optional[OperatorSchedule]:
        return next((op for op in self.operators if op.operator_code == operator_code), None)


@dataclass(frozen=True)
class QueueLookup:
    schedule: Optional[QueueSchedule]
    no_outages: bool
    # False when the operator is unknown or its fetch failed
    operator_available: bool = True
