"""
Tests for the schedule REST API.
"""

import pytest
from fastapi.testclient import TestClient

from roomba_bridge.config import AuditSettings, ScheduleSettings, Settings
from roomba_bridge.main import create_app
from roomba_bridge.schedules import now_ms

from .helpers import FakeCommander, wait_until_sync


def make_settings(tmp_path, strict: bool = False) -> Settings:
    return Settings(
        _env_file=None,
        logs_dir=tmp_path / "logs",
        schedules=ScheduleSettings(
            storage_path=tmp_path / "schedules.json",
            strict_patch_validation=strict,
        ),
        audit=AuditSettings(enabled=False),
    )


@pytest.fixture
def client(tmp_path):
    with TestClient(create_app(make_settings(tmp_path))) as client:
        yield client


@pytest.fixture
def strict_client(tmp_path):
    with TestClient(create_app(make_settings(tmp_path, strict=True))) as client:
        yield client


def create(client, **body):
    response = client.post("/api/schedules", json=body)
    assert response.status_code == 201, response.text
    return response.json()["schedule"]


class TestCreateSchedule:
    """Test POST /api/schedules."""

    def test_create_one_shot(self, client):
        """Test creating a one-shot schedule from epoch milliseconds."""
        when = now_ms() + 3_600_000

        response = client.post(
            "/api/schedules",
            json={"action": "start", "when": when},
            headers={"X-Request-Id": "req-42"},
        )

        assert response.status_code == 201
        schedule = response.json()["schedule"]
        assert schedule["action"] == "start"
        assert schedule["scheduledAt"] == when
        assert schedule["status"] == "pending"
        assert schedule["intervalMs"] is None
        assert schedule["requestId"] == "req-42"

    def test_create_from_iso_time(self, client):
        """Test that an ISO-8601 time is converted to epoch milliseconds."""
        schedule = create(client, action="dock", when="2999-01-01T00:00:00Z")
        assert schedule["scheduledAt"] == 32472144000000

    def test_create_accepts_scheduled_at_alias(self, client):
        """Test that scheduledAt works in place of when."""
        when = now_ms() + 3_600_000
        schedule = create(client, action="dock", scheduledAt=when)
        assert schedule["scheduledAt"] == when

    def test_create_recurring_with_duration(self, client):
        """Test that intervalMs accepts duration strings."""
        schedule = create(
            client, action="start", when=now_ms() + 3_600_000, intervalMs="10m"
        )
        assert schedule["intervalMs"] == 600_000

    def test_create_clean_rooms(self, client):
        """Test creating a targeted clean with a payload."""
        schedule = create(
            client,
            action="cleanRooms",
            when=now_ms() + 3_600_000,
            payload={"regions": ["1", "4"], "ordered": False},
        )
        assert schedule["payload"] == {"regions": ["1", "4"], "ordered": False}

    @pytest.mark.parametrize(
        "body",
        [
            {"action": "vacuum", "when": 1},
            {"action": "start", "when": "tomorrow"},
            {"action": "start"},
            {"action": "start", "when": 1, "intervalMs": "often"},
            {"action": "start", "when": 1, "intervalMs": 0},
            {"action": "cleanRooms", "when": 1, "payload": {"regions": []}},
            {"action": "start", "when": "²"},
            {"action": "start", "when": 10**13, "intervalMs": "²"},
            {"action": "start", "when": 10**400},
            {"action": "start", "when": 10**13, "intervalMs": 10**400},
        ],
    )
    def test_create_rejects_bad_input(self, client, body):
        """Test that invalid requests are answered with 400."""
        response = client.post("/api/schedules", json=body)

        assert response.status_code == 400
        assert client.get("/api/schedules").json()["items"] == []


class TestReadSchedules:
    """Test GET /api/schedules."""

    def test_list_sorted_and_filtered(self, client):
        """Test that the list is soonest first and can be filtered."""
        base = now_ms() + 3_600_000
        late = create(client, action="dock", when=base + 1000)
        early = create(client, action="start", when=base)
        client.delete(f"/api/schedules/{late['id']}")

        items = client.get("/api/schedules").json()["items"]
        assert [s["id"] for s in items] == [early["id"], late["id"]]

        pending = client.get("/api/schedules", params={"status": "pending"}).json()["items"]
        assert [s["id"] for s in pending] == [early["id"]]

        docks = client.get("/api/schedules", params={"action": "dock"}).json()["items"]
        assert [s["id"] for s in docks] == [late["id"]]

    def test_get_by_id(self, client):
        """Test fetching a single schedule."""
        created = create(client, action="start", when=now_ms() + 3_600_000)

        response = client.get(f"/api/schedules/{created['id']}")

        assert response.status_code == 200
        assert response.json()["schedule"]["id"] == created["id"]

    def test_get_unknown_is_404(self, client):
        """Test that an unknown id is not found."""
        response = client.get("/api/schedules/missing")

        assert response.status_code == 404
        assert response.json()["detail"] == "Schedule not found"


class TestUpdateSchedule:
    """Test PATCH /api/schedules/{id}."""

    def test_update_time_and_interval(self, client):
        """Test moving a schedule and making it recurring."""
        created = create(client, action="start", when=now_ms() + 3_600_000)
        new_time = now_ms() + 7_200_000

        response = client.patch(
            f"/api/schedules/{created['id']}",
            json={"when": new_time, "intervalMs": 120_000},
        )

        assert response.status_code == 200
        schedule = response.json()["schedule"]
        assert schedule["scheduledAt"] == new_time
        assert schedule["intervalMs"] == 120_000
        assert schedule["updatedAt"] >= created["updatedAt"]

    def test_update_clears_interval(self, client):
        """Test that a null intervalMs makes the schedule one-shot."""
        created = create(
            client, action="start", when=now_ms() + 3_600_000, intervalMs=60_000
        )

        response = client.patch(
            f"/api/schedules/{created['id']}", json={"intervalMs": None}
        )

        assert response.json()["schedule"]["intervalMs"] is None

    def test_update_action_checks_existing_payload(self, client):
        """Test that switching to cleanRooms requires a usable payload."""
        created = create(client, action="start", when=now_ms() + 3_600_000)

        response = client.patch(
            f"/api/schedules/{created['id']}", json={"action": "cleanRooms"}
        )
        assert response.status_code == 400

        response = client.patch(
            f"/api/schedules/{created['id']}",
            json={"action": "cleanRooms", "payload": {"regions": ["2"]}},
        )
        assert response.status_code == 200
        assert response.json()["schedule"]["action"] == "cleanRooms"

    def test_lenient_update_skips_bad_fields(self, client):
        """Test that unparseable values are ignored by default."""
        created = create(client, action="start", when=now_ms() + 3_600_000)

        response = client.patch(
            f"/api/schedules/{created['id']}",
            json={"when": "whenever", "action": "dock"},
        )

        assert response.status_code == 200
        schedule = response.json()["schedule"]
        assert schedule["scheduledAt"] == created["scheduledAt"]
        assert schedule["action"] == "dock"

    def test_strict_update_rejects_bad_fields(self, strict_client):
        """Test that strict validation answers 400 and changes nothing."""
        created = create(strict_client, action="start", when=now_ms() + 3_600_000)

        response = strict_client.patch(
            f"/api/schedules/{created['id']}",
            json={"when": "whenever", "action": "dock"},
        )

        assert response.status_code == 400
        current = strict_client.get(f"/api/schedules/{created['id']}").json()["schedule"]
        assert current["action"] == "start"

    @pytest.mark.parametrize("when", [10**400, "²"])
    def test_lenient_update_skips_unusable_numbers(self, client, when):
        """Test that oversized or non-decimal times leave the schedule untouched."""
        created = create(client, action="start", when=now_ms() + 3_600_000, intervalMs=60_000)

        response = client.patch(
            f"/api/schedules/{created['id']}", json={"when": when, "intervalMs": when}
        )

        assert response.status_code == 200
        schedule = response.json()["schedule"]
        assert schedule["scheduledAt"] == created["scheduledAt"]
        assert schedule["intervalMs"] == 60_000

    def test_strict_update_rejects_oversized_time(self, strict_client):
        """Test that strict validation answers 400 for an oversized time."""
        created = create(strict_client, action="start", when=now_ms() + 3_600_000)

        response = strict_client.patch(
            f"/api/schedules/{created['id']}", json={"when": 10**400}
        )

        assert response.status_code == 400

    def test_update_clean_rooms_payload_is_validated(self, client):
        """Test that a new payload for a targeted clean must still hold a region."""
        created = create(
            client,
            action="cleanRooms",
            when=now_ms() + 3_600_000,
            payload={"regions": ["1"]},
        )

        rejected = client.patch(
            f"/api/schedules/{created['id']}", json={"payload": {"regions": []}}
        )
        accepted = client.patch(
            f"/api/schedules/{created['id']}", json={"payload": {"regions": ["2", "3"]}}
        )

        assert rejected.status_code == 400
        assert accepted.status_code == 200
        assert accepted.json()["schedule"]["payload"] == {"regions": ["2", "3"]}

    def test_update_payload_of_basic_action_is_not_validated(self, client):
        """Test that payloads of basic commands are stored as given."""
        created = create(client, action="dock", when=now_ms() + 3_600_000)

        response = client.patch(
            f"/api/schedules/{created['id']}", json={"payload": {"note": "evening"}}
        )

        assert response.status_code == 200
        assert response.json()["schedule"]["payload"] == {"note": "evening"}

    def test_update_canceled_is_unchanged(self, client):
        """Test that a canceled schedule is returned as-is."""
        created = create(client, action="start", when=now_ms() + 3_600_000)
        client.delete(f"/api/schedules/{created['id']}")

        response = client.patch(
            f"/api/schedules/{created['id']}", json={"action": "dock"}
        )

        assert response.status_code == 200
        assert response.json()["schedule"]["action"] == "start"
        assert response.json()["schedule"]["status"] == "canceled"

    def test_update_unknown_is_404(self, client):
        """Test that patching an unknown id is not found."""
        response = client.patch("/api/schedules/missing", json={"action": "dock"})
        assert response.status_code == 404


class TestCancelSchedule:
    """Test DELETE /api/schedules/{id}."""

    def test_cancel(self, client):
        """Test that delete cancels and repeating it is harmless."""
        created = create(client, action="start", when=now_ms() + 3_600_000)

        first = client.delete(f"/api/schedules/{created['id']}")
        second = client.delete(f"/api/schedules/{created['id']}")

        assert first.status_code == 200
        assert first.json()["schedule"]["status"] == "canceled"
        assert second.status_code == 200
        assert second.json()["schedule"]["status"] == "canceled"

    def test_cancel_unknown_is_404(self, client):
        """Test that canceling an unknown id is not found."""
        assert client.delete("/api/schedules/missing").status_code == 404


class TestScheduledExecution:
    """Test schedules firing inside the running application."""

    def test_fires_without_robot_as_failed(self, client):
        """Test that a due schedule with no robot attached fails with the reason."""
        created = create(client, action="start", when=now_ms())

        def current():
            return client.get(f"/api/schedules/{created['id']}").json()["schedule"]

        wait_until_sync(lambda: current()["status"] == "failed")
        assert current()["result"] == {"ok": False, "message": "Not connected to Roomba"}

        audit = client.get("/api/audit").json()["items"]
        assert audit[0]["command"] == "schedule:start"
        assert audit[0]["status"] == "error"
        assert audit[0]["scheduleId"] == created["id"]

    def test_fires_with_robot_attached(self, client):
        """Test that a due schedule drives the attached robot."""
        commander = FakeCommander()
        client.app.state.robot.attach(commander)
        created = create(client, action="dock", when=now_ms())

        def current():
            return client.get(f"/api/schedules/{created['id']}").json()["schedule"]

        wait_until_sync(lambda: current()["status"] == "executed")
        assert commander.calls == [("dock", None)]
        assert current()["result"] == {"ok": True}

    def test_schedules_survive_restart(self, tmp_path):
        """Test that schedules created before a restart are served afterwards."""
        settings = make_settings(tmp_path)
        with TestClient(create_app(settings)) as first:
            created = create(first, action="start", when=now_ms() + 3_600_000)

        with TestClient(create_app(settings)) as second:
            response = second.get(f"/api/schedules/{created['id']}")

        assert response.status_code == 200
        assert response.json()["schedule"]["status"] == "pending"
