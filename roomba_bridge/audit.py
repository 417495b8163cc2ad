"""
Command audit trail.

Each robot command attempt, whether sent immediately from the API or fired by
the scheduler, is recorded as one flat row. Rows are kept in a bounded
in-memory ring for the API and, when enabled, appended as JSON lines to a
daily rotated operations log.
"""

import json
import logging
import logging.handlers
import time
from collections import deque
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuditEntry(BaseModel):
    """One command attempt."""

    model_config = ConfigDict(populate_by_name=True)

    execution_request_id: str = Field(alias="executionRequestId")
    request_id: Optional[str] = Field(default=None, alias="requestId")
    command: str
    status: Literal["ok", "error"]
    message: Optional[str] = None
    schedule_id: Optional[str] = Field(default=None, alias="scheduleId")
    timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))

    def to_public(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AuditLog:
    """Bounded in-memory audit history with an optional JSON-lines file."""

    def __init__(self, log_file: Optional[Path] = None, max_entries: int = 500):
        self._entries: deque[AuditEntry] = deque(maxlen=max_entries)
        self._setup_logger(log_file)

    def _setup_logger(self, log_file: Optional[Path]):
        """Set up the file logger that receives one JSON line per entry."""
        if log_file is None:
            self.logger = None
            return

        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger(f"operation_audit.{log_file.resolve()}")
        self.logger.setLevel(logging.INFO)

        # Avoid stacking handlers when the same file is configured twice
        if not self.logger.handlers:
            file_handler = logging.handlers.TimedRotatingFileHandler(
                log_file, when="midnight", encoding="utf-8"
            )
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(logging.Formatter("%(message)s"))
            self.logger.addHandler(file_handler)
            # Keep audit rows out of the application log
            self.logger.propagate = False

    def add(self, entry: AuditEntry) -> None:
        self._entries.append(entry)
        if self.logger:
            self.logger.info(json.dumps(entry.to_public(), ensure_ascii=False))

    def recent(self, limit: Optional[int] = None) -> list[AuditEntry]:
        """Entries newest first, at most ``limit`` of them."""
        entries = list(reversed(self._entries))
        if limit is not None:
            entries = entries[:limit]
        return entries

    def __len__(self) -> int:
        return len(self._entries)
