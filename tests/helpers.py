"""Shared test doubles and polling helpers."""

import asyncio
import time
from typing import Any, Callable

from roomba_bridge.schedules import ScheduleEventKind


async def wait_until(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.02):
    """Poll ``predicate`` on the event loop until it holds or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise TimeoutError("condition not met in time")
        await asyncio.sleep(interval)


def wait_until_sync(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.02):
    """Blocking variant for TestClient tests, where the app loop runs in another thread."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise TimeoutError("condition not met in time")
        time.sleep(interval)


class Recorder:
    """Collects everything the scheduler publishes."""

    def __init__(self):
        self.events: list = []
        self.audit: list = []

    def broadcast(self, event) -> None:
        self.events.append(event)

    def add_audit(self, entry) -> None:
        self.audit.append(entry)

    def kinds(self, schedule_id: str | None = None) -> list[ScheduleEventKind]:
        return [
            e.event
            for e in self.events
            if schedule_id is None or e.task.id == schedule_id
        ]

    def count(self, kind: ScheduleEventKind) -> int:
        return sum(1 for e in self.events if e.event == kind)


class FakeCommander:
    """In-memory robot session recording every command it receives."""

    def __init__(self, connected: bool = True, fail_with: Exception | None = None):
        self._connected = connected
        self.fail_with = fail_with
        self.calls: list[tuple[str, Any]] = []

    @property
    def connected(self) -> bool:
        return self._connected

    async def _record(self, name: str, payload: Any = None) -> None:
        self.calls.append((name, payload))
        if self.fail_with is not None:
            raise self.fail_with

    async def start(self) -> None:
        await self._record("start")

    async def stop(self) -> None:
        await self._record("stop")

    async def pause(self) -> None:
        await self._record("pause")

    async def resume(self) -> None:
        await self._record("resume")

    async def dock(self) -> None:
        await self._record("dock")

    async def clean_rooms(self, payload: dict[str, Any]) -> None:
        await self._record("clean_rooms", payload)
