"""Robot command dispatch.

The device transport (MQTT session, telemetry) lives outside the bridge and is
attached at runtime as a ``RobotCommander``. This module maps symbolic
actions onto that commander, both for immediate API commands and for
scheduled firings.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from ..logger import logger
from ..schedules.models import Schedule
from ..schedules.types import ScheduleAction


class RobotNotConnectedError(RuntimeError):
    """Raised when a command is issued with no connected robot."""

    def __init__(self, message: str = "Not connected to Roomba"):
        super().__init__(message)


@runtime_checkable
class RobotCommander(Protocol):
    """Command surface of a connected robot session."""

    @property
    def connected(self) -> bool: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def pause(self) -> None: ...

    async def resume(self) -> None: ...

    async def dock(self) -> None: ...

    async def clean_rooms(self, payload: dict[str, Any]) -> None: ...


class RobotLink:
    """Holds the currently attached robot session, if any.

    The bridge does not open the device connection itself. The host process
    that owns the MQTT session calls ``attach`` on ``app.state.robot`` once it
    is connected and ``detach`` when it drops; until then every command and
    scheduled firing fails with ``RobotNotConnectedError``.
    """

    def __init__(self, commander: Optional[RobotCommander] = None):
        self._commander = commander

    @property
    def connected(self) -> bool:
        return self._commander is not None and self._commander.connected

    def attach(self, commander: RobotCommander) -> None:
        self._commander = commander
        logger.info(f"Robot session attached: {type(commander).__name__}")

    def detach(self) -> None:
        if self._commander is not None:
            logger.info("Robot session detached")
        self._commander = None

    def require(self) -> RobotCommander:
        """Return the connected commander or raise ``RobotNotConnectedError``."""
        if not self.connected:
            raise RobotNotConnectedError()
        assert self._commander is not None
        return self._commander


def _first_defined(*values):
    for value in values:
        if value is not None and value != "":
            return value
    return None


def normalize_clean_rooms(payload: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Build the targeted-clean command body from an API/schedule payload.

    ``regions`` may hold bare ids or objects carrying ``region_id``,
    ``regionId`` or ``id`` plus optional ``type`` (default ``"rid"``) and
    ``params``. Regions without an id are skipped.

    Raises:
        ValueError: If no valid region remains
    """
    source = payload if isinstance(payload, dict) else {}
    raw_regions = source.get("regions")
    if isinstance(raw_regions, (str, int)):
        raw_regions = [raw_regions]
    if not isinstance(raw_regions, list):
        raw_regions = []

    regions = []
    for region in raw_regions:
        if isinstance(region, dict):
            region_id = _first_defined(
                region.get("region_id"), region.get("regionId"), region.get("id")
            )
            region_type = region.get("type") or "rid"
            params = region.get("params")
        else:
            region_id = region
            region_type = "rid"
            params = None

        if region_id is None or isinstance(region_id, bool) or str(region_id).strip() == "":
            logger.warning(f"Skipping targeted clean region with missing identifier: {region!r}")
            continue

        normalized: dict[str, Any] = {"region_id": str(region_id).strip(), "type": region_type}
        if isinstance(params, dict):
            normalized["params"] = params
        regions.append(normalized)

    if not regions:
        raise ValueError("At least one valid region is required")

    command: dict[str, Any] = {
        "ordered": 0 if source.get("ordered") is False else 1,
        "regions": regions,
    }
    map_id = _first_defined(source.get("mapId"), source.get("pmapId"))
    if map_id is not None:
        command["pmap_id"] = map_id
    user_pmapv_id = source.get("userPmapvId")
    if user_pmapv_id is not None and user_pmapv_id != "":
        command["user_pmapv_id"] = user_pmapv_id
    return command


async def send_command(
    commander: RobotCommander, action: str, payload: Optional[dict[str, Any]] = None
) -> None:
    """Invoke the commander method for ``action``.

    Raises:
        ValueError: If the action is unknown or a clean-rooms payload is invalid
    """
    try:
        resolved = ScheduleAction(action)
    except ValueError:
        raise ValueError(f"Unsupported action '{action}'") from None

    if resolved == ScheduleAction.CLEAN_ROOMS:
        command = normalize_clean_rooms(payload)
        logger.info(
            f"Dispatching targeted clean: regions={[r['region_id'] for r in command['regions']]}"
            f", ordered={command['ordered'] == 1}"
        )
        await commander.clean_rooms(command)
        return

    handlers = {
        ScheduleAction.START: commander.start,
        ScheduleAction.STOP: commander.stop,
        ScheduleAction.PAUSE: commander.pause,
        ScheduleAction.RESUME: commander.resume,
        ScheduleAction.DOCK: commander.dock,
    }
    await handlers[resolved]()
    logger.debug(f"Command sent: {resolved.value}")


class RobotCommandExecutor:
    """Execution adapter handed to the scheduler."""

    def __init__(self, link: RobotLink):
        self.link = link

    async def __call__(self, schedule: Schedule, execution_request_id: str) -> None:
        commander = self.link.require()
        logger.info(
            f"Schedule {schedule.id} firing '{schedule.action}' (execution {execution_request_id})"
        )
        await send_command(commander, schedule.action, schedule.payload)
