"""JSON file persistence for the schedule list.

The whole list is rewritten on every save; schedule counts are small and the
file is only read back at startup.
"""

import json
import os
from pathlib import Path

from pydantic import ValidationError

from ..logger import log_exception, logger
from .models import Schedule
from .types import ScheduleStatus


class ScheduleStore:
    """Loads and saves the full schedule list as a pretty-printed JSON array."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> list[Schedule]:
        """Read every schedule from disk.

        A missing or unreadable file yields an empty list; elements that do
        not validate are skipped. Never raises.
        """
        if not self.path.exists():
            logger.warning(f"Schedule file {self.path} not found, starting empty")
            return []

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load schedules from {self.path}: {e}")
            return []

        if not isinstance(data, list):
            logger.warning(
                f"Schedule file {self.path} does not contain a JSON array, ignoring it"
            )
            return []

        schedules: list[Schedule] = []
        for index, item in enumerate(data):
            try:
                schedule = Schedule.model_validate(item)
            except ValidationError as e:
                logger.warning(f"Skipping malformed schedule #{index}: {e}")
                continue

            if schedule.status == ScheduleStatus.EXECUTING:
                # The process stopped mid-firing; the attempt never completed
                logger.warning(
                    f"Schedule {schedule.id} was executing at shutdown, returning it to pending"
                )
                schedule.status = ScheduleStatus.PENDING
            schedules.append(schedule)

        logger.info(f"Loaded {len(schedules)} schedules from {self.path}")
        return schedules

    @log_exception("Failed to persist schedules to {self.path}")
    def save(self, schedules: list[Schedule]) -> None:
        """Overwrite the file with ``schedules``. Errors are logged, not raised."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(
            [schedule.to_public() for schedule in schedules],
            indent=2,
            ensure_ascii=False,
        )
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(content, encoding="utf-8")
        os.replace(tmp_path, self.path)
