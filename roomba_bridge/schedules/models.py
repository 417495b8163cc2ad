import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from .types import ScheduleEventKind, ScheduleResult, ScheduleStatus


class Schedule(BaseModel):
    """A timed robot command, one-shot or recurring.

    Timestamps are milliseconds since the epoch. Field aliases are the
    camelCase names used in the persisted file and on the wire.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    action: str
    payload: Any = None
    scheduled_at: int = Field(alias="scheduledAt")
    interval_ms: int | None = Field(default=None, alias="intervalMs")
    status: ScheduleStatus = ScheduleStatus.PENDING

    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")
    last_run_at: int | None = Field(default=None, alias="lastRunAt")
    executed_at: int | None = Field(default=None, alias="executedAt")

    request_id: str | None = Field(default=None, alias="requestId")
    execution_request_id: str | None = Field(default=None, alias="executionRequestId")
    result: ScheduleResult | None = None

    @property
    def is_recurring(self) -> bool:
        return self.interval_ms is not None and self.interval_ms > 0

    @field_serializer("result")
    def _serialize_result(self, result: ScheduleResult | None):
        if result is None:
            return None
        return result.model_dump(exclude_none=True)

    def to_public(self) -> dict[str, Any]:
        """JSON-ready camelCase projection used by REST, WebSocket and the store."""
        return self.model_dump(mode="json", by_alias=True)


class ScheduleEvent(BaseModel):
    """Lifecycle notification published to the broadcast sink."""

    kind: Literal["schedule"] = "schedule"
    event: ScheduleEventKind
    task: Schedule

    def to_message(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "event": self.event.value,
            "task": self.task.to_public(),
        }
