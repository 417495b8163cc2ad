from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from ..audit import AuditEntry
    from .models import Schedule, ScheduleEvent


class ScheduleStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    EXECUTED = "executed"
    FAILED = "failed"
    CANCELED = "canceled"


class ScheduleAction(str, Enum):
    START = "start"
    STOP = "stop"
    PAUSE = "pause"
    RESUME = "resume"
    DOCK = "dock"
    CLEAN_ROOMS = "cleanRooms"


class ScheduleEventKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    CANCELED = "canceled"
    EXECUTING = "executing"
    EXECUTED = "executed"
    FAILED = "failed"


class ScheduleResult(BaseModel):
    """Outcome of the most recent firing."""

    ok: bool
    message: str | None = None


# Collaborators injected into the scheduler
ExecuteFunc = Callable[["Schedule", str], Awaitable[Any]]
BroadcastFunc = Callable[["ScheduleEvent"], Any]
AuditFunc = Callable[["AuditEntry"], Any]
ClockFunc = Callable[[], int]


class InvalidPatchError(ValueError):
    """Raised by a strict scheduler when an update carries an invalid field."""
