import time
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..audit import AuditLog
from ..dependencies import get_audit_log

router = APIRouter(tags=["system"])


class HealthCheck(BaseModel):
    status: str
    timestamp: int


@router.get("/health", response_model=HealthCheck)
async def health_check():
    return HealthCheck(status="ok", timestamp=int(time.time() * 1000))


@router.get("/audit")
async def get_audit(
    limit: Optional[int] = Query(None, ge=1, description="Maximum rows, newest first"),
    audit: AuditLog = Depends(get_audit_log),
):
    """Recent command audit rows, newest first."""
    return {"items": [entry.to_public() for entry in audit.recent(limit)]}
