"""Single-timer scheduler for one-shot and recurring robot commands.

Only one wake-up is armed at a time, for the earliest pending schedule. On
wake-up every pending schedule that is already due is fired, oldest first and
one at a time, so a long pause (suspend, event loop stall) is caught up in a
single batch. Recurring schedules go back to pending after each firing,
whether it succeeded or not.

All public methods are synchronous and must be called from the event loop
thread; the only suspension point is the await on the execute callable.
"""

import asyncio
import inspect
import math
import time
import uuid
from collections.abc import Mapping
from typing import Any, List, Optional

from ..audit import AuditEntry
from ..logger import logger
from ..validation import is_finite_number, is_non_empty_string
from .models import Schedule, ScheduleEvent
from .store import ScheduleStore
from .types import (
    AuditFunc,
    BroadcastFunc,
    ClockFunc,
    ExecuteFunc,
    InvalidPatchError,
    ScheduleEventKind,
    ScheduleResult,
    ScheduleStatus,
)

# Largest single timer delay; farther schedules are re-checked when it elapses
MAX_TIMER_DELAY_MS = 2**31 - 1

PATCHABLE_FIELDS = ("scheduled_at", "action", "payload", "interval_ms")


def now_ms() -> int:
    return int(time.time() * 1000)


def is_positive_interval(value: Any) -> bool:
    return is_finite_number(value) and value > 0


class Scheduler:
    """Owns the schedule list, its persistence and the pending wake-up.

    Args:
        store: Backing file, loaded once here and rewritten after every mutation
        execute: ``async (schedule, execution_request_id)``; raising marks the
            firing as failed
        broadcast: Receives a ``ScheduleEvent`` per lifecycle transition
        add_audit: Receives an ``AuditEntry`` per firing attempt
        clock: Returns the current time in epoch milliseconds
        strict_patch_validation: Reject a whole update when any field is
            invalid instead of skipping that field
        loop: Event loop used for the timer (defaults to the running loop)

    Raises:
        ValueError: If ``execute`` is not callable
        RuntimeError: If no loop is given and none is running
    """

    def __init__(
        self,
        store: ScheduleStore,
        execute: ExecuteFunc,
        broadcast: Optional[BroadcastFunc] = None,
        add_audit: Optional[AuditFunc] = None,
        clock: Optional[ClockFunc] = None,
        strict_patch_validation: bool = False,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        if not callable(execute):
            raise ValueError("Scheduler requires an execute callable")

        self._store = store
        self._execute = execute
        self._broadcast = broadcast
        self._add_audit = add_audit
        self._clock = clock or now_ms
        self._strict = strict_patch_validation
        self._loop = loop or asyncio.get_running_loop()

        self._schedules: List[Schedule] = store.load()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._batch: Optional[asyncio.Task] = None
        self._sink_tasks: set[asyncio.Task] = set()
        self._disposed = False

        self._schedule_next()

    @property
    def disposed(self) -> bool:
        return self._disposed

    # Public operations

    def list(self) -> List[Schedule]:
        """All schedules, soonest first."""
        return sorted(self._schedules, key=lambda s: s.scheduled_at)

    def get(self, schedule_id: str) -> Optional[Schedule]:
        for schedule in self._schedules:
            if schedule.id == schedule_id:
                return schedule
        return None

    def create(
        self,
        scheduled_at: float,
        action: str,
        payload: Any = None,
        request_id: Optional[str] = None,
        interval_ms: Optional[float] = None,
    ) -> Schedule:
        """Add a pending schedule and re-arm the timer.

        Raises:
            ValueError: If ``scheduled_at`` is not a finite timestamp or
                ``interval_ms`` is given but not a positive number
        """
        if not is_finite_number(scheduled_at):
            raise ValueError(f"scheduled_at must be a finite timestamp, got {scheduled_at!r}")
        if interval_ms is not None and not is_positive_interval(interval_ms):
            raise ValueError(f"interval_ms must be a positive number, got {interval_ms!r}")

        now = self._clock()
        schedule = Schedule(
            action=action,
            payload=payload,
            scheduled_at=int(scheduled_at),
            interval_ms=math.ceil(interval_ms) if interval_ms is not None else None,
            created_at=now,
            updated_at=now,
            request_id=request_id,
        )
        self._schedules.append(schedule)
        self._store.save(self._schedules)
        logger.info(
            f"Created schedule {schedule.id} ({action}) at {schedule.scheduled_at}"
            f", interval={schedule.interval_ms}"
        )
        self._emit(ScheduleEventKind.CREATED, schedule)
        self._schedule_next()
        return schedule

    def update(self, schedule_id: str, changes: Mapping[str, Any]) -> Optional[Schedule]:
        """Apply the fields present in ``changes`` to a pending schedule.

        Recognised keys are ``scheduled_at``, ``action``, ``payload`` and
        ``interval_ms`` (``None`` clears recurrence; fractions round up to whole
        milliseconds). Invalid fields are skipped, or rejected with
        ``InvalidPatchError`` in strict mode. A schedule that is not pending is
        returned unchanged.
        """
        schedule = self.get(schedule_id)
        if schedule is None:
            return None
        if schedule.status != ScheduleStatus.PENDING:
            return schedule

        applied, errors = self._validate_changes(changes)
        if errors:
            if self._strict:
                raise InvalidPatchError("; ".join(errors))
            logger.warning(f"Ignoring invalid fields for schedule {schedule_id}: {errors}")
        if not applied:
            return schedule

        for field, value in applied.items():
            setattr(schedule, field, value)
        schedule.updated_at = self._clock()
        self._store.save(self._schedules)
        logger.info(f"Updated schedule {schedule_id}: {sorted(applied)}")
        self._emit(ScheduleEventKind.UPDATED, schedule)
        self._schedule_next()
        return schedule

    def cancel(self, schedule_id: str) -> Optional[Schedule]:
        """Cancel a pending schedule; anything else is returned unchanged."""
        schedule = self.get(schedule_id)
        if schedule is None:
            return None
        if schedule.status != ScheduleStatus.PENDING:
            return schedule

        schedule.status = ScheduleStatus.CANCELED
        schedule.updated_at = self._clock()
        self._store.save(self._schedules)
        logger.info(f"Canceled schedule {schedule_id}")
        self._emit(ScheduleEventKind.CANCELED, schedule)
        self._schedule_next()
        return schedule

    def dispose(self) -> None:
        """Stop arming timers. A firing already in progress runs to completion."""
        if self._disposed:
            return
        self._disposed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        logger.info("Scheduler disposed")

    # Timer

    def _schedule_next(self) -> None:
        if self._disposed:
            return
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        pending = [s for s in self._schedules if s.status == ScheduleStatus.PENDING]
        if not pending:
            return

        earliest = min(pending, key=lambda s: s.scheduled_at)
        delay_ms = min(max(0, earliest.scheduled_at - self._clock()), MAX_TIMER_DELAY_MS)
        self._timer = self._loop.call_later(delay_ms / 1000, self._on_timer)
        logger.debug(f"Next wake-up in {delay_ms}ms for schedule {earliest.id}")

    def _on_timer(self) -> None:
        self._timer = None
        if self._disposed:
            return
        if self._batch is not None and not self._batch.done():
            # The running batch re-arms once it finishes
            return
        self._batch = self._loop.create_task(self._run_due())

    async def _run_due(self) -> None:
        try:
            now = self._clock()
            due = sorted(
                (
                    s
                    for s in self._schedules
                    if s.status == ScheduleStatus.PENDING and s.scheduled_at <= now
                ),
                key=lambda s: s.scheduled_at,
            )
            if len(due) > 1:
                logger.info(f"Catching up {len(due)} overdue schedules")
            for schedule in due:
                if self._disposed:
                    return
                await self._fire(schedule)
        except Exception:
            logger.exception("Error while running due schedules")
        finally:
            self._batch = None
            self._schedule_next()

    async def _fire(self, schedule: Schedule) -> None:
        # Canceled or updated while waiting its turn in the batch
        if schedule.status != ScheduleStatus.PENDING or schedule.scheduled_at > self._clock():
            return

        execution_request_id = uuid.uuid4().hex
        schedule.status = ScheduleStatus.EXECUTING
        self._emit(ScheduleEventKind.EXECUTING, schedule)
        logger.info(
            f"Executing schedule {schedule.id} ({schedule.action}), "
            f"execution {execution_request_id}"
        )

        try:
            await self._execute(schedule, execution_request_id)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.warning(f"Schedule {schedule.id} ({schedule.action}) failed: {message}")
            self._complete(schedule, execution_request_id, message)
        else:
            self._complete(schedule, execution_request_id, None)

    def _complete(
        self, schedule: Schedule, execution_request_id: str, error: Optional[str]
    ) -> None:
        now = self._clock()
        schedule.executed_at = now
        schedule.updated_at = now
        schedule.execution_request_id = execution_request_id
        if error is None:
            schedule.last_run_at = now
            schedule.result = ScheduleResult(ok=True)
        else:
            schedule.result = ScheduleResult(ok=False, message=error)

        if schedule.is_recurring:
            schedule.last_run_at = now
            schedule.scheduled_at = now + schedule.interval_ms
            schedule.status = ScheduleStatus.PENDING
        elif error is None:
            schedule.status = ScheduleStatus.EXECUTED
        else:
            schedule.status = ScheduleStatus.FAILED

        self._store.save(self._schedules)
        self._emit(
            ScheduleEventKind.EXECUTED if error is None else ScheduleEventKind.FAILED,
            schedule,
        )
        self._call_sink(
            self._add_audit,
            AuditEntry(
                execution_request_id=execution_request_id,
                request_id=schedule.request_id,
                command=f"schedule:{schedule.action}",
                status="ok" if error is None else "error",
                message=error,
                schedule_id=schedule.id,
                timestamp=now,
            ),
            "audit",
        )

    # Helpers

    def _validate_changes(self, changes: Mapping[str, Any]) -> tuple[dict[str, Any], List[str]]:
        applied: dict[str, Any] = {}
        errors: List[str] = []

        for key in changes:
            if key not in PATCHABLE_FIELDS:
                errors.append(f"unknown field '{key}'")

        if "scheduled_at" in changes:
            value = changes["scheduled_at"]
            if is_finite_number(value):
                applied["scheduled_at"] = int(value)
            else:
                errors.append(f"scheduled_at must be a finite timestamp, got {value!r}")

        if "action" in changes:
            value = changes["action"]
            if is_non_empty_string(value):
                applied["action"] = value
            else:
                errors.append(f"action must be a non-empty string, got {value!r}")

        if "payload" in changes:
            applied["payload"] = changes["payload"]

        if "interval_ms" in changes:
            value = changes["interval_ms"]
            if value is None:
                applied["interval_ms"] = None
            elif is_positive_interval(value):
                applied["interval_ms"] = math.ceil(value)
            else:
                errors.append(f"interval_ms must be a positive number or None, got {value!r}")

        return applied, errors

    def _emit(self, kind: ScheduleEventKind, schedule: Schedule) -> None:
        event = ScheduleEvent(event=kind, task=schedule.model_copy(deep=True))
        self._call_sink(self._broadcast, event, "broadcast")

    def _call_sink(self, sink, item, name: str) -> None:
        if sink is None:
            return
        try:
            result = sink(item)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result, loop=self._loop)
                self._sink_tasks.add(task)
                task.add_done_callback(self._sink_done)
        except Exception:
            logger.exception(f"Schedule {name} sink failed")

    def _sink_done(self, task: asyncio.Task) -> None:
        self._sink_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Schedule sink task failed: {task.exception()}")
