"""
Schedule management API endpoints.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from pydantic import BaseModel, ConfigDict, Field

from ..dependencies import get_request_id, get_scheduler
from ..logger import logger
from ..robot import normalize_clean_rooms
from ..schedules import InvalidPatchError, ScheduleAction, Scheduler
from ..validation import parse_duration_to_ms, parse_timestamp_ms

router = APIRouter(prefix="/schedules", tags=["schedules"])

TimeInput = int | float | str


class CreateScheduleRequest(BaseModel):
    """Request model for creating a schedule."""

    model_config = ConfigDict(populate_by_name=True)

    action: str
    when: Optional[TimeInput] = None
    scheduled_at: Optional[TimeInput] = Field(default=None, alias="scheduledAt")
    payload: Optional[Any] = None
    interval_ms: Optional[TimeInput] = Field(default=None, alias="intervalMs")


class UpdateScheduleRequest(BaseModel):
    """Request model for updating a pending schedule. Only sent fields are applied."""

    model_config = ConfigDict(populate_by_name=True)

    when: Optional[TimeInput] = None
    scheduled_at: Optional[TimeInput] = Field(default=None, alias="scheduledAt")
    action: Optional[str] = None
    payload: Optional[Any] = None
    interval_ms: Optional[TimeInput] = Field(default=None, alias="intervalMs")


def _validate_action(action: str, payload: Any) -> None:
    try:
        resolved = ScheduleAction(action)
    except ValueError:
        allowed = ", ".join(a.value for a in ScheduleAction)
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported action '{action}', expected one of: {allowed}",
        )
    if resolved == ScheduleAction.CLEAN_ROOMS:
        try:
            normalize_clean_rooms(payload)
        except ValueError as e:
            raise HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail=str(e))


def _not_found() -> HTTPException:
    return HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail="Schedule not found")


@router.get("")
async def list_schedules(
    status: Optional[str] = None,
    action: Optional[str] = None,
    scheduler: Scheduler = Depends(get_scheduler),
):
    """List schedules soonest first, optionally filtered by status and action."""
    schedules = scheduler.list()
    if status:
        schedules = [s for s in schedules if s.status.value == status]
    if action:
        schedules = [s for s in schedules if s.action == action]
    return {"items": [s.to_public() for s in schedules]}


@router.get("/{schedule_id}")
async def get_schedule(schedule_id: str, scheduler: Scheduler = Depends(get_scheduler)):
    schedule = scheduler.get(schedule_id)
    if schedule is None:
        raise _not_found()
    return {"schedule": schedule.to_public()}


@router.post("", status_code=http_status.HTTP_201_CREATED)
async def create_schedule(
    request: CreateScheduleRequest,
    scheduler: Scheduler = Depends(get_scheduler),
    request_id: str = Depends(get_request_id),
):
    """
    Create a one-shot or recurring schedule.

    ``when`` (or ``scheduledAt``) is epoch milliseconds or an ISO-8601
    datetime; ``intervalMs`` is milliseconds or a duration like ``"30m"``.
    """
    _validate_action(request.action, request.payload)

    raw_when = request.when if request.when is not None else request.scheduled_at
    scheduled_at = parse_timestamp_ms(raw_when)
    if scheduled_at is None:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail="when must be a timestamp in milliseconds or an ISO-8601 datetime",
        )

    interval_ms = None
    if request.interval_ms is not None and request.interval_ms != "":
        interval_ms = parse_duration_to_ms(request.interval_ms)
        if interval_ms is None:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail="intervalMs must be a positive duration",
            )

    schedule = scheduler.create(
        scheduled_at=scheduled_at,
        action=request.action,
        payload=request.payload,
        request_id=request_id,
        interval_ms=interval_ms,
    )
    return {"schedule": schedule.to_public()}


@router.patch("/{schedule_id}")
async def update_schedule(
    schedule_id: str,
    request: UpdateScheduleRequest,
    scheduler: Scheduler = Depends(get_scheduler),
):
    """
    Update a pending schedule.

    Schedules that already ran or were canceled are returned unchanged.
    Values that cannot be parsed are handed to the scheduler as-is, which
    skips them or rejects the patch depending on its validation mode.
    """
    existing = scheduler.get(schedule_id)
    if existing is None:
        raise _not_found()

    fields = request.model_fields_set
    changes: dict[str, Any] = {}

    if "when" in fields or "scheduled_at" in fields:
        raw_when = request.when if "when" in fields else request.scheduled_at
        parsed = parse_timestamp_ms(raw_when)
        changes["scheduled_at"] = parsed if parsed is not None else raw_when

    payload = request.payload if "payload" in fields else existing.payload
    if "action" in fields:
        if request.action:
            _validate_action(request.action, payload)
        changes["action"] = request.action
    elif "payload" in fields and existing.action == ScheduleAction.CLEAN_ROOMS.value:
        _validate_action(existing.action, payload)

    if "payload" in fields:
        changes["payload"] = payload

    if "interval_ms" in fields:
        raw_interval = request.interval_ms
        if raw_interval is None or raw_interval == "":
            changes["interval_ms"] = None
        else:
            parsed = parse_duration_to_ms(raw_interval)
            changes["interval_ms"] = parsed if parsed is not None else raw_interval

    try:
        schedule = scheduler.update(schedule_id, changes)
    except InvalidPatchError as e:
        raise HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail=str(e))
    if schedule is None:
        raise _not_found()
    return {"schedule": schedule.to_public()}


@router.delete("/{schedule_id}")
async def cancel_schedule(schedule_id: str, scheduler: Scheduler = Depends(get_scheduler)):
    """Cancel a pending schedule. Finished schedules are returned unchanged."""
    schedule = scheduler.cancel(schedule_id)
    if schedule is None:
        raise _not_found()
    logger.debug(f"Cancel requested for schedule {schedule_id}: now {schedule.status.value}")
    return {"schedule": schedule.to_public()}
