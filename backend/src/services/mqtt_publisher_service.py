"""
MQTT notification queue.

Publishes a resource's "in use" / "not in use" messages to every MQTT target
configured for it when a usage session starts or ends. Failed publishes are
retried by the shared dispatch queue.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from core.config import MQTT_MAX_RETRIES, MQTT_RETRY_DELAY_MS
from models import MqttResourceConfig, Resource
from services.dispatch_queue import DeliveryItem, DispatchQueue
from services.event_bus import UsageEvent, USAGE_STARTED
from services.mqtt_client_service import MqttClientService
from services.template_renderer import TemplateRenderer, template_renderer
from utils.datetime_utils import to_iso_string

logger = logging.getLogger(__name__)


@dataclass
class MqttDeliveryItem(DeliveryItem):
    """Pending MQTT publish."""

    server_id: int = 0
    config_id: int = 0
    topic: str = ""

    def describe(self) -> str:
        return f"resource {self.resource_id} (MQTT config {self.config_id}, topic '{self.topic}')"


def build_mqtt_context(resource: Resource, event: UsageEvent) -> Dict[str, Any]:
    """Template context for MQTT topics and messages."""
    return {
        "id": resource.id,
        "name": resource.name,
        "description": resource.description or "",
        "timestamp": to_iso_string(event.occurred_at),
        "event": "started" if event.event_type == USAGE_STARTED else "ended",
        "user_id": event.user_id,
    }


class MqttPublisherService(DispatchQueue):
    """Queue that publishes usage notifications to MQTT servers."""

    name = "mqtt"

    def __init__(
        self,
        mqtt_client: MqttClientService,
        renderer: TemplateRenderer = template_renderer,
        max_attempts: int = MQTT_MAX_RETRIES,
        retry_delay_ms: int = MQTT_RETRY_DELAY_MS,
        **kwargs
    ):
        """
        Initialize the MQTT queue.

        Args:
            mqtt_client: Connection manager used for publishing
            renderer: Template renderer for topics and messages
            max_attempts: Attempts per message before it is dropped
            retry_delay_ms: Minimum delay between attempts
            **kwargs: Passed to DispatchQueue (session_factory, clock)
        """
        super().__init__(**kwargs)
        self.mqtt_client = mqtt_client
        self.renderer = renderer
        self.max_attempts = max_attempts
        self.retry_delay_ms = retry_delay_ms

    def build_items(self, db: Session, event: UsageEvent) -> List[DeliveryItem]:
        """Render one publish per MQTT config of the event's resource."""
        resource = db.get(Resource, event.resource_id)
        if not resource:
            logger.warning(f"[mqtt] Resource {event.resource_id} not found for {event.event_type}")
            return []

        configs = db.query(MqttResourceConfig).filter(
            MqttResourceConfig.resource_id == resource.id
        ).order_by(MqttResourceConfig.id).all()

        context = build_mqtt_context(resource, event)
        in_use = event.event_type == USAGE_STARTED

        items: List[DeliveryItem] = []
        for config in configs:
            try:
                topic = self.renderer.render(config.in_use_topic if in_use else config.not_in_use_topic, context)
                message = self.renderer.render(config.in_use_message if in_use else config.not_in_use_message, context)
            except Exception as e:
                logger.exception(f"[mqtt] Failed to render MQTT config {config.id}: {e}")
                continue

            items.append(MqttDeliveryItem(
                resource_id=resource.id,
                payload=message,
                max_attempts=self.max_attempts,
                retry_delay_ms=self.retry_delay_ms,
                server_id=config.server_id,
                config_id=config.id,
                topic=topic,
            ))
        return items

    async def deliver(self, item: DeliveryItem) -> None:
        """Publish the item, connecting to its server if needed."""
        if not isinstance(item, MqttDeliveryItem):
            raise TypeError(f"Unexpected item type {type(item).__name__}")
        await self.mqtt_client.publish(item.server_id, item.topic, item.payload)

    async def test_config(self, db: Session, resource_id: int, config_id: int) -> Dict[str, Any]:
        """
        Publish the rendered "in use" message once, outside the queue.

        Args:
            db: Database session
            resource_id: Resource the config belongs to
            config_id: MQTT config to test

        Returns:
            {"success": bool, "message": str}
        """
        config = db.query(MqttResourceConfig).filter(
            MqttResourceConfig.id == config_id,
            MqttResourceConfig.resource_id == resource_id
        ).first()
        if not config:
            return {"success": False, "message": f"MQTT config {config_id} not found for resource {resource_id}"}

        resource = config.resource
        context = build_mqtt_context(
            resource,
            UsageEvent(event_type=USAGE_STARTED, resource_id=resource.id, user_id=0, start_time=self._clock())
        )
        context["event"] = "test"

        try:
            topic = self.renderer.render(config.in_use_topic, context)
            message = self.renderer.render(config.in_use_message, context)
            await self.mqtt_client.publish(config.server_id, topic, message)
        except Exception as e:
            logger.warning(f"[mqtt] Test publish for config {config_id} failed: {e}")
            return {"success": False, "message": f"Failed to publish test message: {e}"}

        return {"success": True, "message": f"Test message published to {topic}"}
