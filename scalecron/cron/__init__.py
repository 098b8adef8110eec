"""Schedule registry and execution engine."""

from scalecron.cron.registry import ScheduleRegistry
from scalecron.cron.service import EngineState, SchedulingEngine
from scalecron.cron.timer import CronSpec, CronTimer
from scalecron.cron.types import Action, FireTimes, ScheduleListing, ScheduleRecord, ScheduleRequest, ServiceType

__all__ = [
    "Action",
    "CronSpec",
    "CronTimer",
    "EngineState",
    "FireTimes",
    "ScheduleListing",
    "ScheduleRecord",
    "ScheduleRegistry",
    "ScheduleRequest",
    "SchedulingEngine",
    "ServiceType",
]
