import pytest

from roomba_bridge.schedules import Scheduler, ScheduleStore

from .helpers import Recorder


async def _noop_execute(schedule, execution_request_id):
    return None


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def storage_path(tmp_path):
    return tmp_path / "var" / "schedules.json"


@pytest.fixture
def make_scheduler(storage_path, recorder):
    """Factory building schedulers wired to the recorder; all are disposed afterwards.

    Must be called from inside a running event loop.
    """
    created: list[Scheduler] = []

    def factory(execute=None, path=None, **kwargs) -> Scheduler:
        scheduler = Scheduler(
            store=ScheduleStore(path or storage_path),
            execute=execute or _noop_execute,
            broadcast=recorder.broadcast,
            add_audit=recorder.add_audit,
            **kwargs,
        )
        created.append(scheduler)
        return scheduler

    yield factory

    for scheduler in created:
        scheduler.dispose()
