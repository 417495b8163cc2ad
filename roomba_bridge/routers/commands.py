"""
Immediate robot command endpoints.

Each command is sent through the attached robot session and recorded in the
audit log under its action name.
"""

import uuid
from enum import Enum
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from pydantic import BaseModel

from ..audit import AuditEntry, AuditLog
from ..dependencies import get_audit_log, get_request_id, get_robot_link
from ..logger import logger
from ..robot import RobotLink, RobotNotConnectedError, normalize_clean_rooms, send_command
from ..schedules import ScheduleAction

router = APIRouter(tags=["commands"])


class BasicCommand(str, Enum):
    START = ScheduleAction.START.value
    STOP = ScheduleAction.STOP.value
    PAUSE = ScheduleAction.PAUSE.value
    RESUME = ScheduleAction.RESUME.value
    DOCK = ScheduleAction.DOCK.value


COMMAND_MESSAGES = {
    ScheduleAction.START.value: "Cleaning started",
    ScheduleAction.STOP.value: "Cleaning stopped",
    ScheduleAction.PAUSE.value: "Cleaning paused",
    ScheduleAction.RESUME.value: "Cleaning resumed",
    ScheduleAction.DOCK.value: "Returning to dock",
    ScheduleAction.CLEAN_ROOMS.value: "Targeted clean started",
}


class CommandResponse(BaseModel):
    success: bool
    message: str
    requestId: str


class CleanRoomsRequest(BaseModel):
    """Targeted clean request; ``regions`` holds region ids or region objects."""

    regions: list[Any] | str | int
    ordered: Optional[bool] = None
    mapId: Optional[str | int] = None
    pmapId: Optional[str | int] = None
    userPmapvId: Optional[str | int] = None


async def _run_command(
    action: str,
    link: RobotLink,
    audit: AuditLog,
    request_id: str,
    payload: Optional[dict[str, Any]] = None,
) -> CommandResponse:
    execution_request_id = uuid.uuid4().hex

    def record(status: str, message: Optional[str] = None) -> None:
        audit.add(
            AuditEntry(
                execution_request_id=execution_request_id,
                request_id=request_id,
                command=action,
                status=status,
                message=message,
            )
        )

    try:
        commander = link.require()
    except RobotNotConnectedError as e:
        raise HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        await send_command(commander, action, payload)
    except Exception as e:
        message = str(e) or type(e).__name__
        logger.error(f"Command '{action}' failed (request {request_id}): {message}")
        record("error", message)
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message
        )

    record("ok")
    return CommandResponse(
        success=True, message=COMMAND_MESSAGES[action], requestId=request_id
    )


@router.post("/cleanRooms", response_model=CommandResponse)
async def clean_rooms(
    request: CleanRoomsRequest,
    link: RobotLink = Depends(get_robot_link),
    audit: AuditLog = Depends(get_audit_log),
    request_id: str = Depends(get_request_id),
):
    """Start a targeted clean of the given regions."""
    payload = request.model_dump(exclude_none=True)
    try:
        normalize_clean_rooms(payload)
    except ValueError as e:
        raise HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail=str(e))

    return await _run_command(
        ScheduleAction.CLEAN_ROOMS.value, link, audit, request_id, payload
    )


@router.post("/{command}", response_model=CommandResponse)
async def basic_command(
    command: BasicCommand,
    link: RobotLink = Depends(get_robot_link),
    audit: AuditLog = Depends(get_audit_log),
    request_id: str = Depends(get_request_id),
):
    """Send start, stop, pause, resume or dock to the robot."""
    return await _run_command(command.value, link, audit, request_id)
