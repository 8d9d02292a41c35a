"""
Integration tests for MQTT server and resource config endpoints.
"""

import asyncio
from typing import List
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from fastapi.testclient import TestClient

from main import app
from api.dependencies import get_mqtt_client_service, get_mqtt_publisher
from core.database import get_db
from services.mqtt_client_service import MqttClientService, MqttPublishError
from services.mqtt_publisher_service import MqttPublisherService
from services.template_renderer import TemplateRenderer
from tests.utils import auth_headers


class FakeClientFactory:
    """Builds mock paho clients that accept or refuse the connection."""

    def __init__(self, refuse: bool = False):
        self.refuse = refuse
        self.clients: List[MagicMock] = []

    def __call__(self, settings) -> MagicMock:
        client = MagicMock()
        client.is_connected.return_value = True

        def connect_async(host, port, keepalive=60):
            asyncio.get_running_loop().call_soon(
                client.on_connect, client, None, None, Mock(is_failure=self.refuse), None
            )

        client.connect_async.side_effect = connect_async
        self.clients.append(client)
        return client


@pytest.fixture
def client_factory():
    return FakeClientFactory()


@pytest.fixture
def client(db_session, session_factory, client_factory):
    """Create test client with database and MQTT client overrides."""
    def override_get_db():
        yield db_session

    mqtt_client = MqttClientService(session_factory=session_factory, client_factory=client_factory)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mqtt_client_service] = lambda: mqtt_client
    client = TestClient(app)
    yield client
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_mqtt_client_service, None)
    app.dependency_overrides.pop(get_mqtt_publisher, None)


def _create_server(client, manager, **overrides):
    body = {"name": "Workshop broker", "host": "broker.local"}
    body.update(overrides)
    return client.post("/api/mqtt/servers", json=body, headers=auth_headers(manager))


def _create_config(client, manager, resource, server_id, **overrides):
    body = {
        "server_id": server_id,
        "in_use_topic": "machines/{{id}}/status",
        "in_use_message": '{"inUse": true, "name": "{{name}}"}',
        "not_in_use_topic": "machines/{{id}}/status",
        "not_in_use_message": '{"inUse": false}',
    }
    body.update(overrides)
    return client.post(f"/api/resources/{resource.id}/mqtt", json=body, headers=auth_headers(manager))


class TestMqttServersApi:
    """Test MQTT server endpoints."""

    def test_create_hides_password(self, client, manager):
        """Passwords are stored but never returned; a client id is generated."""
        response = _create_server(client, manager, username="maker", password="secret")
        assert response.status_code == 201
        data = response.json()
        assert data["port"] == 1883
        assert data["use_tls"] is False
        assert data["username"] == "maker"
        assert data["has_password"] is True
        assert "password" not in data
        assert data["client_id"]
        assert data["connected"] is False

    def test_list_update_delete(self, client, manager):
        """Servers can be listed, updated and deleted."""
        server = _create_server(client, manager).json()

        response = client.get("/api/mqtt/servers", headers=auth_headers(manager))
        assert [s["id"] for s in response.json()["servers"]] == [server["id"]]

        response = client.put(
            f"/api/mqtt/servers/{server['id']}",
            json={"port": 8883, "use_tls": True},
            headers=auth_headers(manager)
        )
        assert response.status_code == 200
        assert response.json()["port"] == 8883
        assert response.json()["use_tls"] is True
        assert response.json()["host"] == "broker.local"

        response = client.delete(f"/api/mqtt/servers/{server['id']}", headers=auth_headers(manager))
        assert response.status_code == 204

        response = client.get(f"/api/mqtt/servers/{server['id']}", headers=auth_headers(manager))
        assert response.status_code == 404

    def test_invalid_port_rejected(self, client, manager):
        """Ports outside 1-65535 fail validation."""
        response = _create_server(client, manager, port=70000)
        assert response.status_code == 422

    def test_connection_success(self, client, manager, client_factory):
        """Testing a server opens and closes a throwaway connection."""
        server = _create_server(client, manager).json()

        response = client.post(f"/api/mqtt/servers/{server['id']}/test", headers=auth_headers(manager))
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Connection successful to mqtt://broker.local:1883"}

        assert len(client_factory.clients) == 1
        client_factory.clients[0].disconnect.assert_called_once()

    def test_connection_refused(self, client, manager, client_factory):
        """A refused connection is reported as a failed test."""
        client_factory.refuse = True
        server = _create_server(client, manager).json()

        response = client.post(f"/api/mqtt/servers/{server['id']}/test", headers=auth_headers(manager))
        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["message"].startswith("Connection failed: broker refused connection")

    def test_unknown_server(self, client, manager):
        """Testing a missing server returns 404."""
        response = client.post("/api/mqtt/servers/999/test", headers=auth_headers(manager))
        assert response.status_code == 404

    def test_statuses(self, client, manager):
        """Status counters start at zero; the list covers servers used since startup."""
        server = _create_server(client, manager).json()

        response = client.get(f"/api/mqtt/servers/{server['id']}/status", headers=auth_headers(manager))
        assert response.status_code == 200
        data = response.json()
        assert data["server_id"] == server["id"]
        assert data["connected"] is False
        assert data["connect_attempts"] == 0
        assert data["publish_successes"] == 0

        response = client.get("/api/mqtt/servers/status", headers=auth_headers(manager))
        assert response.status_code == 200
        assert [s["server_id"] for s in response.json()["statuses"]] == [server["id"]]

    def test_member_forbidden(self, client, member):
        """Members cannot manage MQTT servers."""
        response = client.get("/api/mqtt/servers", headers=auth_headers(member))
        assert response.status_code == 403


class TestMqttConfigsApi:
    """Test per-resource MQTT config endpoints."""

    def test_crud(self, client, manager, resource):
        """Configs can be created, listed, updated and deleted."""
        server = _create_server(client, manager).json()
        response = _create_config(client, manager, resource, server["id"])
        assert response.status_code == 201
        config = response.json()
        assert config["name"] == "Default MQTT config"
        assert config["server_id"] == server["id"]

        base = f"/api/resources/{resource.id}/mqtt"
        response = client.get(base, headers=auth_headers(manager))
        assert [c["id"] for c in response.json()["configs"]] == [config["id"]]

        response = client.put(
            f"{base}/{config['id']}",
            json={"name": "Status light", "in_use_message": "ON"},
            headers=auth_headers(manager)
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Status light"
        assert response.json()["in_use_message"] == "ON"
        assert response.json()["not_in_use_message"] == '{"inUse": false}'

        response = client.delete(f"{base}/{config['id']}", headers=auth_headers(manager))
        assert response.status_code == 204

        response = client.get(f"{base}/{config['id']}", headers=auth_headers(manager))
        assert response.status_code == 404

    def test_unknown_server_rejected(self, client, manager, resource):
        """Configs must reference an existing server."""
        response = _create_config(client, manager, resource, 999)
        assert response.status_code == 404

    def test_deleting_server_removes_configs(self, client, manager, resource):
        """Configs using a deleted server are deleted with it."""
        server = _create_server(client, manager).json()
        _create_config(client, manager, resource, server["id"])

        client.delete(f"/api/mqtt/servers/{server['id']}", headers=auth_headers(manager))

        response = client.get(f"/api/resources/{resource.id}/mqtt", headers=auth_headers(manager))
        assert response.json()["configs"] == []

    def test_config_test_publishes_rendered_message(self, client, manager, resource, session_factory):
        """Testing a config publishes the rendered "in use" message once."""
        mqtt_client = Mock()
        mqtt_client.publish = AsyncMock()
        publisher = MqttPublisherService(mqtt_client, renderer=TemplateRenderer(), session_factory=session_factory)
        app.dependency_overrides[get_mqtt_publisher] = lambda: publisher

        server = _create_server(client, manager).json()
        config = _create_config(client, manager, resource, server["id"]).json()

        response = client.post(
            f"/api/resources/{resource.id}/mqtt/{config['id']}/test",
            headers=auth_headers(manager)
        )
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": f"Test message published to machines/{resource.id}/status"
        }
        mqtt_client.publish.assert_awaited_once_with(
            server["id"], f"machines/{resource.id}/status", '{"inUse": true, "name": "Laser"}'
        )

    def test_config_test_reports_publish_failure(self, client, manager, resource, session_factory):
        """Publish errors are reported as a failed test."""
        mqtt_client = Mock()
        mqtt_client.publish = AsyncMock(side_effect=MqttPublishError("no connection"))
        publisher = MqttPublisherService(mqtt_client, renderer=TemplateRenderer(), session_factory=session_factory)
        app.dependency_overrides[get_mqtt_publisher] = lambda: publisher

        server = _create_server(client, manager).json()
        config = _create_config(client, manager, resource, server["id"]).json()

        response = client.post(
            f"/api/resources/{resource.id}/mqtt/{config['id']}/test",
            headers=auth_headers(manager)
        )
        assert response.status_code == 200
        assert response.json() == {"success": False, "message": "Failed to publish test message: no connection"}
