"""
Integration tests for the usage session and introduction workflow over HTTP.
"""

import pytest
from fastapi.testclient import TestClient

from main import app
from api.dependencies import get_event_bus
from core.database import get_db
from services.event_bus import EventBus, USAGE_STARTED, USAGE_ENDED
from tests.conftest import create_user
from tests.utils import auth_headers


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def client(db_session, event_bus):
    """Create test client with database and event bus overrides."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_bus] = lambda: event_bus
    client = TestClient(app)
    yield client
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_event_bus, None)


class TestLaserWorkflow:
    """End-to-end flow: grant, introduce, use, revoke."""

    def test_revoked_introduction_blocks_usage(self, client, db_session, event_bus, manager):
        """A member introduced by an introducer can use the laser until the introduction is revoked."""
        tutor = create_user(db_session, "Tutor")
        member = create_user(db_session, "Member")
        events = []
        event_bus.subscribe(USAGE_STARTED, events.append)
        event_bus.subscribe(USAGE_ENDED, events.append)

        response = client.post("/api/resources", json={"name": "Laser"}, headers=auth_headers(manager))
        assert response.status_code == 201
        laser_id = response.json()["id"]

        response = client.post(
            f"/api/resources/{laser_id}/introducers",
            json={"user_id": tutor.id},
            headers=auth_headers(manager)
        )
        assert response.status_code == 201

        response = client.post(
            f"/api/resources/{laser_id}/introductions",
            json={"user_id": member.id},
            headers=auth_headers(tutor)
        )
        assert response.status_code == 201
        introduction = response.json()
        assert introduction["is_revoked"] is False
        assert introduction["tutor_user_id"] == tutor.id

        response = client.post(f"/api/resources/{laser_id}/usage/start", headers=auth_headers(member))
        assert response.status_code == 200
        assert response.json()["usage_in_minutes"] == -1

        response = client.put(f"/api/resources/{laser_id}/usage/end", headers=auth_headers(member))
        assert response.status_code == 200
        assert response.json()["usage_in_minutes"] >= 0

        response = client.post(
            f"/api/resources/{laser_id}/introductions/{introduction['id']}/revoke",
            json={"comment": "Left the laser running unattended"},
            headers=auth_headers(manager)
        )
        assert response.status_code == 200

        response = client.post(f"/api/resources/{laser_id}/usage/start", headers=auth_headers(member))
        assert response.status_code == 400
        assert response.json()["detail"] == "You must complete the introduction before using this resource"

        assert [event.event_type for event in events] == [USAGE_STARTED, USAGE_ENDED]


class TestUsageEndpoints:
    """Test the usage endpoints."""

    def test_requires_authentication(self, client, resource):
        """Unauthenticated requests get 401."""
        response = client.post(f"/api/resources/{resource.id}/usage/start")
        assert response.status_code == 401

    def test_active_session_lookup(self, client, resource, manager):
        """The active endpoint reports whether the resource is in use."""
        response = client.get(f"/api/resources/{resource.id}/usage/active", headers=auth_headers(manager))
        assert response.json() == {"is_in_use": False, "session": None}

        client.post(
            f"/api/resources/{resource.id}/usage/start",
            json={"notes": "engraving", "estimated_duration_minutes": 30},
            headers=auth_headers(manager)
        )

        response = client.get(f"/api/resources/{resource.id}/usage/active", headers=auth_headers(manager))
        data = response.json()
        assert data["is_in_use"] is True
        assert data["session"]["user_id"] == manager.id
        assert data["session"]["start_notes"] == "engraving"
        assert data["session"]["estimated_duration_minutes"] == 30

    def test_active_session_unknown_resource(self, client, manager):
        """Unknown resources give 404."""
        response = client.get("/api/resources/999/usage/active", headers=auth_headers(manager))
        assert response.status_code == 404

    def test_second_start_rejected(self, client, db_session, resource, manager):
        """A resource in use cannot be started by someone else."""
        other = create_user(db_session, "Other", can_manage_resources=True)
        client.post(f"/api/resources/{resource.id}/usage/start", headers=auth_headers(manager))

        response = client.post(
            f"/api/resources/{resource.id}/usage/start",
            json={"force_take_over": True},
            headers=auth_headers(other)
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Resource is currently in use by another user"

    def test_extend(self, client, resource, manager):
        """Sessions can be extended by an allowed number of minutes."""
        client.post(
            f"/api/resources/{resource.id}/usage/start",
            json={"estimated_duration_minutes": 60},
            headers=auth_headers(manager)
        )

        response = client.put(
            f"/api/resources/{resource.id}/usage/extend",
            json={"additional_minutes": 120},
            headers=auth_headers(manager)
        )
        assert response.status_code == 200
        assert response.json()["estimated_duration_minutes"] == 180

        response = client.put(
            f"/api/resources/{resource.id}/usage/extend",
            json={"additional_minutes": 7},
            headers=auth_headers(manager)
        )
        assert response.status_code == 400

    def test_history_visibility(self, client, db_session, resource, manager, member):
        """Members only see their own sessions; managers see all and may filter."""
        client.post(f"/api/resources/{resource.id}/usage/start", headers=auth_headers(manager))
        client.put(f"/api/resources/{resource.id}/usage/end", headers=auth_headers(manager))

        response = client.get(f"/api/resources/{resource.id}/usage/history", headers=auth_headers(manager))
        assert response.status_code == 200
        assert response.json()["pagination"]["total"] == 1

        response = client.get(f"/api/resources/{resource.id}/usage/history", headers=auth_headers(member))
        assert response.json()["sessions"] == []

        response = client.get(
            f"/api/resources/{resource.id}/usage/history",
            params={"user_id": manager.id},
            headers=auth_headers(member)
        )
        assert response.status_code == 403

    def test_my_usage(self, client, resource, manager):
        """Users can list their own sessions across resources."""
        client.post(f"/api/resources/{resource.id}/usage/start", headers=auth_headers(manager))

        response = client.get("/api/users/me/usage", headers=auth_headers(manager))

        assert response.status_code == 200
        data = response.json()
        assert len(data["sessions"]) == 1
        assert data["sessions"][0]["resource_id"] == resource.id
        assert data["pagination"]["page"] == 1
