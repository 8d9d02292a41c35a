"""
Webhook notification queue.

Sends an HTTP request to every active webhook of a resource when a usage
session starts or ends. Requests carry an X-Webhook-Timestamp header and, when
the webhook has a secret, an HMAC-SHA256 signature so receivers can verify
them. Failed requests are retried by the shared dispatch queue according to
each webhook's retry policy.
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from core.constants import (
    WEBHOOK_METHODS_WITH_BODY,
    WEBHOOK_REQUEST_TIMEOUT_SECONDS,
    WEBHOOK_TIMESTAMP_HEADER,
)
from models import Resource, WebhookConfig
from services.dispatch_queue import DeliveryItem, DispatchQueue
from services.event_bus import UsageEvent, USAGE_STARTED
from services.template_renderer import TemplateRenderer, template_renderer
from utils.datetime_utils import to_epoch_ms, to_iso_string

logger = logging.getLogger(__name__)

TEST_USER = {"id": 0, "name": "Test User"}


def sign_payload(secret: str, timestamp: str, payload: str) -> str:
    """
    Compute the webhook signature.

    Args:
        secret: Webhook secret
        timestamp: Value of the X-Webhook-Timestamp header
        payload: Raw request body

    Returns:
        Hex-encoded HMAC-SHA256 of "{timestamp}.{payload}"
    """
    message = f"{timestamp}.{payload}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(secret: str, timestamp: str, payload: str, signature: str) -> bool:
    """Check a received signature in constant time."""
    return hmac.compare_digest(sign_payload(secret, timestamp, payload), signature)


@dataclass
class WebhookDeliveryItem(DeliveryItem):
    """Pending webhook request."""

    webhook_id: int = 0
    url: str = ""
    method: str = "POST"
    headers: Dict[str, str] = field(default_factory=dict)
    secret: Optional[str] = None
    signature_header: str = "X-Webhook-Signature"

    def describe(self) -> str:
        return f"resource {self.resource_id} (webhook {self.webhook_id}, {self.method} {self.url})"


def build_webhook_context(resource: Resource, event: UsageEvent) -> Dict[str, Any]:
    """Template context for webhook URLs, headers and bodies."""
    return {
        "id": resource.id,
        "name": resource.name,
        "description": resource.description or "",
        "timestamp": to_iso_string(event.occurred_at),
        "event": "started" if event.event_type == USAGE_STARTED else "ended",
        "user_id": event.user_id,
    }


class WebhookPublisherService(DispatchQueue):
    """Queue that delivers usage notifications to HTTP webhooks."""

    name = "webhook"

    def __init__(
        self,
        renderer: TemplateRenderer = template_renderer,
        http_client: Optional[httpx.AsyncClient] = None,
        **kwargs
    ):
        """
        Initialize the webhook queue.

        Args:
            renderer: Template renderer for URLs, headers and bodies
            http_client: Client used for requests; created lazily when omitted
            **kwargs: Passed to DispatchQueue (session_factory, clock)
        """
        super().__init__(**kwargs)
        self.renderer = renderer
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=WEBHOOK_REQUEST_TIMEOUT_SECONDS)
        return self._http_client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # ===== Queue hooks =====

    def build_items(self, db: Session, event: UsageEvent) -> List[DeliveryItem]:
        """Render one request per active webhook of the event's resource."""
        resource = db.get(Resource, event.resource_id)
        if not resource:
            logger.warning(f"[webhook] Resource {event.resource_id} not found for {event.event_type}")
            return []

        webhooks = db.query(WebhookConfig).filter(
            WebhookConfig.resource_id == resource.id,
            WebhookConfig.active.is_(True)
        ).order_by(WebhookConfig.id).all()

        context = build_webhook_context(resource, event)
        in_use = event.event_type == USAGE_STARTED

        items: List[DeliveryItem] = []
        for webhook in webhooks:
            template = webhook.in_use_template if in_use else webhook.not_in_use_template
            try:
                items.append(self._build_item(webhook, template, context))
            except Exception as e:
                logger.exception(f"[webhook] Failed to render webhook {webhook.id}: {e}")
        return items

    async def deliver(self, item: DeliveryItem) -> None:
        """Send the request; raises on network errors, timeouts and non-2xx responses."""
        if not isinstance(item, WebhookDeliveryItem):
            raise TypeError(f"Unexpected item type {type(item).__name__}")

        timestamp = str(to_epoch_ms(self._clock()))
        headers = {"Content-Type": "application/json", **item.headers}
        headers[WEBHOOK_TIMESTAMP_HEADER] = timestamp
        if item.secret:
            headers[item.signature_header] = sign_payload(item.secret, timestamp, item.payload)

        method = item.method.upper()
        content = item.payload if method in WEBHOOK_METHODS_WITH_BODY else None

        response = await self.http_client.request(
            method,
            item.url,
            headers=headers,
            content=content,
            timeout=WEBHOOK_REQUEST_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        logger.debug(f"[webhook] {method} {item.url} -> {response.status_code}")

    # ===== Testing =====

    async def test_webhook(self, db: Session, resource_id: int, webhook_id: int) -> Dict[str, Any]:
        """
        Send the rendered "in use" template once with event "test", outside the queue.

        Args:
            db: Database session
            resource_id: Resource the webhook belongs to
            webhook_id: Webhook to test

        Returns:
            {"success": bool, "message": str}
        """
        webhook = db.query(WebhookConfig).filter(
            WebhookConfig.id == webhook_id,
            WebhookConfig.resource_id == resource_id
        ).first()
        if not webhook:
            return {"success": False, "message": f"Webhook {webhook_id} not found for resource {resource_id}"}

        if webhook.headers:
            # Malformed headers fail the test rather than being skipped
            try:
                json.loads(webhook.headers)
            except ValueError as e:
                return {"success": False, "message": f"Invalid headers JSON: {e}"}

        now = self._clock()
        context = build_webhook_context(
            webhook.resource,
            UsageEvent(event_type=USAGE_STARTED, resource_id=resource_id, user_id=0, start_time=now)
        )
        context["event"] = "test"
        context["user"] = dict(TEST_USER)

        try:
            item = self._build_item(webhook, webhook.in_use_template, context)
            await self.deliver(item)
        except httpx.HTTPStatusError as e:
            return {"success": False, "message": f"Webhook returned status {e.response.status_code}"}
        except Exception as e:
            logger.warning(f"[webhook] Test request for webhook {webhook_id} failed: {e}")
            return {"success": False, "message": f"Failed to send test webhook: {e}"}

        return {"success": True, "message": "Test webhook sent successfully"}

    # ===== Helpers =====

    def _build_item(self, webhook: WebhookConfig, template: str, context: Dict[str, Any]) -> WebhookDeliveryItem:
        return WebhookDeliveryItem(
            resource_id=webhook.resource_id,
            payload=self.renderer.render(template, context),
            max_attempts=webhook.max_retries if webhook.retry_enabled else 0,
            retry_delay_ms=webhook.retry_delay,
            webhook_id=webhook.id,
            url=self.renderer.render_if_templated(webhook.url, context),
            method=webhook.method,
            headers=self.renderer.render_headers(webhook.headers, context),
            secret=webhook.secret,
            signature_header=webhook.signature_header,
        )
