"""
Unit tests for webhook and MQTT configuration management.
"""

import json

import pytest
from fastapi import HTTPException

from models import MqttResourceConfig
from services.mqtt_config_service import MqttResourceConfigService, MqttServerService
from services.webhook_config_service import WebhookConfigService, generate_webhook_secret


def _webhook_data(**overrides):
    data = {
        "name": "Status board",
        "url": "https://hooks.example.com/status",
        "in_use_template": '{"inUse": true}',
        "not_in_use_template": '{"inUse": false}',
    }
    data.update(overrides)
    return data


class TestWebhookConfigService:
    """Test webhook CRUD and validation."""

    def test_create_generates_secret(self, db_session, resource):
        """New webhooks get a secret and the default signature header."""
        webhook = WebhookConfigService.create_webhook(db_session, resource.id, _webhook_data(method="put"))

        assert webhook.secret.startswith("whsec_")
        assert len(webhook.secret) == len("whsec_") + 48
        assert webhook.signature_header == "X-Webhook-Signature"
        assert webhook.method == "PUT"
        assert webhook.active is True
        assert webhook.retry_enabled is False

    def test_headers_dict_is_stored_as_json(self, db_session, resource):
        """Header dicts are serialized to JSON text."""
        webhook = WebhookConfigService.create_webhook(
            db_session, resource.id, _webhook_data(headers={"Authorization": "Bearer x"})
        )
        assert json.loads(webhook.headers) == {"Authorization": "Bearer x"}

    @pytest.mark.parametrize("headers", ['{"broken": ', '["a"]'])
    def test_invalid_headers_rejected(self, db_session, resource, headers):
        """Header text must be a JSON object."""
        with pytest.raises(HTTPException) as exc_info:
            WebhookConfigService.create_webhook(db_session, resource.id, _webhook_data(headers=headers))
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "headers must be a JSON object"

    def test_invalid_method_rejected(self, db_session, resource):
        """Only standard HTTP methods are accepted."""
        with pytest.raises(HTTPException) as exc_info:
            WebhookConfigService.create_webhook(db_session, resource.id, _webhook_data(method="TRACE"))
        assert exc_info.value.status_code == 400

    def test_missing_resource(self, db_session):
        """Webhooks need an existing resource."""
        with pytest.raises(HTTPException) as exc_info:
            WebhookConfigService.create_webhook(db_session, 321, _webhook_data())
        assert exc_info.value.status_code == 404

    def test_update_keeps_secret(self, db_session, resource):
        """Updates change given fields only and never the secret."""
        webhook = WebhookConfigService.create_webhook(db_session, resource.id, _webhook_data())
        secret = webhook.secret

        updated = WebhookConfigService.update_webhook(
            db_session, resource.id, webhook.id, {"name": "Renamed", "secret": "stolen", "max_retries": 5}
        )

        assert updated.name == "Renamed"
        assert updated.max_retries == 5
        assert updated.secret == secret

    def test_regenerate_secret(self, db_session, resource):
        """Regeneration replaces the secret."""
        webhook = WebhookConfigService.create_webhook(db_session, resource.id, _webhook_data())
        old_secret = webhook.secret

        regenerated = WebhookConfigService.regenerate_secret(db_session, resource.id, webhook.id)

        assert regenerated.secret != old_secret
        assert regenerated.secret.startswith("whsec_")

    def test_status_and_delete(self, db_session, resource):
        """Webhooks can be disabled and deleted."""
        webhook = WebhookConfigService.create_webhook(db_session, resource.id, _webhook_data())

        assert WebhookConfigService.update_status(db_session, resource.id, webhook.id, False).active is False

        WebhookConfigService.delete_webhook(db_session, resource.id, webhook.id)
        assert WebhookConfigService.list_for_resource(db_session, resource.id) == []

    def test_webhook_scoped_to_resource(self, db_session, resource):
        """A webhook is not found under another resource id."""
        webhook = WebhookConfigService.create_webhook(db_session, resource.id, _webhook_data())

        with pytest.raises(HTTPException) as exc_info:
            WebhookConfigService.get_webhook(db_session, resource.id + 1, webhook.id)
        assert exc_info.value.status_code == 404

    def test_generated_secrets_differ(self):
        """Each generated secret is random."""
        assert generate_webhook_secret() != generate_webhook_secret()


class TestMqttConfigServices:
    """Test MQTT server and resource config CRUD."""

    def test_create_server_generates_client_id(self, db_session):
        """A client id is generated when none is given."""
        server = MqttServerService.create_server(db_session, "Broker", "broker.local")

        assert server.port == 1883
        assert server.client_id.startswith("makerspace-api-")
        assert server.url == "mqtt://broker.local:1883"

    def test_update_server(self, db_session):
        """Only given fields change."""
        server = MqttServerService.create_server(db_session, "Broker", "broker.local", client_id="fixed")

        updated = MqttServerService.update_server(db_session, server.id, port=8883, use_tls=True)

        assert updated.url == "mqtts://broker.local:8883"
        assert updated.client_id == "fixed"

    def test_delete_server_removes_configs(self, db_session, resource):
        """Deleting a server deletes the configs that use it."""
        server = MqttServerService.create_server(db_session, "Broker", "broker.local")
        MqttResourceConfigService.create_config(
            db_session, resource.id, server.id, "t/on", "on", "t/off", "off"
        )

        MqttServerService.delete_server(db_session, server.id)

        assert db_session.query(MqttResourceConfig).count() == 0
        assert MqttServerService.list_servers(db_session) == []

    def test_create_config_requires_server(self, db_session, resource):
        """Configs need an existing server."""
        with pytest.raises(HTTPException) as exc_info:
            MqttResourceConfigService.create_config(
                db_session, resource.id, 42, "t/on", "on", "t/off", "off"
            )
        assert exc_info.value.status_code == 404

    def test_config_crud(self, db_session, resource):
        """Configs can be created, renamed, moved to another server and deleted."""
        first = MqttServerService.create_server(db_session, "First", "one.local")
        second = MqttServerService.create_server(db_session, "Second", "two.local")
        config = MqttResourceConfigService.create_config(
            db_session, resource.id, first.id, "t/on", "on", "t/off", "off"
        )
        assert config.name == "Default MQTT config"

        updated = MqttResourceConfigService.update_config(
            db_session, resource.id, config.id, server_id=second.id, name="Light"
        )
        assert updated.server_id == second.id
        assert updated.name == "Light"
        assert updated.in_use_topic == "t/on"

        with pytest.raises(HTTPException):
            MqttResourceConfigService.update_config(db_session, resource.id, config.id, server_id=999)

        MqttResourceConfigService.delete_config(db_session, resource.id, config.id)
        assert MqttResourceConfigService.list_for_resource(db_session, resource.id) == []
