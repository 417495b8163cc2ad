from .models import Schedule, ScheduleEvent
from .scheduler import MAX_TIMER_DELAY_MS, Scheduler, now_ms
from .store import ScheduleStore
from .types import (
    InvalidPatchError,
    ScheduleAction,
    ScheduleEventKind,
    ScheduleResult,
    ScheduleStatus,
)

__all__ = [
    "InvalidPatchError",
    "MAX_TIMER_DELAY_MS",
    "Schedule",
    "ScheduleAction",
    "ScheduleEvent",
    "ScheduleEventKind",
    "ScheduleResult",
    "ScheduleStatus",
    "ScheduleStore",
    "Scheduler",
    "now_ms",
]
