import uuid
from typing import Annotated, Optional

from fastapi import Header, Request

from .audit import AuditLog
from .robot import RobotLink
from .schedules import Scheduler


def get_scheduler(request: Request) -> Scheduler:
    return request.app.state.scheduler


def get_robot_link(request: Request) -> RobotLink:
    return request.app.state.robot


def get_audit_log(request: Request) -> AuditLog:
    return request.app.state.audit


def get_request_id(
    x_request_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """Correlation id for the request: the caller's ``X-Request-Id`` or a fresh one."""
    if x_request_id and x_request_id.strip():
        return x_request_id.strip()
    return uuid.uuid4().hex
