"""
Dependencies exposing the application's runtime services to routes.

The event bus, MQTT client and notification queues are created once in
main.py and stored on app.state; tests may replace them through
app.dependency_overrides.
"""

from fastapi import Request

from services.event_bus import EventBus
from services.mqtt_client_service import MqttClientService
from services.mqtt_publisher_service import MqttPublisherService
from services.webhook_publisher_service import WebhookPublisherService


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


def get_mqtt_client_service(request: Request) -> MqttClientService:
    return request.app.state.mqtt_client


def get_mqtt_publisher(request: Request) -> MqttPublisherService:
    return request.app.state.mqtt_publisher


def get_webhook_publisher(request: Request) -> WebhookPublisherService:
    return request.app.state.webhook_publisher
