"""
Unit tests for the webhook notification queue.

HTTP traffic goes through httpx.MockTransport so requests can be inspected
and failures injected.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import httpx
import pytest

from models import WebhookConfig
from services.event_bus import UsageEvent, USAGE_STARTED, USAGE_ENDED
from services.template_renderer import TemplateRenderer
from services.webhook_publisher_service import (
    WebhookPublisherService,
    sign_payload,
    verify_signature,
)
from utils.datetime_utils import to_epoch_ms

FIXED_NOW = datetime(2025, 1, 28, 10, 0, tzinfo=timezone.utc)


class MockEndpoint:
    """Records requests and answers with a scripted list of status codes."""

    def __init__(self, statuses: Optional[List[int]] = None, default_status: int = 200):
        self.statuses = list(statuses or [])
        self.default_status = default_status
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status_code = self.statuses.pop(0) if self.statuses else self.default_status
        return httpx.Response(status_code, json={"ok": status_code < 400})


def _publisher(session_factory, endpoint: Callable, clock=lambda: FIXED_NOW) -> WebhookPublisherService:
    return WebhookPublisherService(
        renderer=TemplateRenderer(),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(endpoint)),
        session_factory=session_factory,
        clock=clock,
    )


def _webhook(db_session, resource, **overrides) -> WebhookConfig:
    values = {
        "resource_id": resource.id,
        "name": "Status board",
        "url": "https://hooks.example.com/status",
        "method": "POST",
        "in_use_template": '{"id": {{id}}, "name": "{{name}}", "inUse": true, "at": "{{timestamp}}"}',
        "not_in_use_template": '{"id": {{id}}, "inUse": false}',
        "retry_enabled": True,
        "max_retries": 3,
        "retry_delay": 0,
        "secret": "whsec_test",
    }
    values.update(overrides)
    webhook = WebhookConfig(**values)
    db_session.add(webhook)
    db_session.commit()
    return webhook


def _started(resource) -> UsageEvent:
    return UsageEvent(event_type=USAGE_STARTED, resource_id=resource.id, user_id=1, start_time=FIXED_NOW)


def _ended(resource) -> UsageEvent:
    return UsageEvent(
        event_type=USAGE_ENDED, resource_id=resource.id, user_id=1,
        start_time=FIXED_NOW - timedelta(hours=1), end_time=FIXED_NOW
    )


class TestSignatures:
    """Test payload signing helpers."""

    def test_signature_is_deterministic(self):
        """The same inputs produce the same hex digest."""
        first = sign_payload("secret", "1700000000000", '{"a": 1}')
        assert first == sign_payload("secret", "1700000000000", '{"a": 1}')
        assert len(first) == 64

    def test_signature_covers_timestamp_and_body(self):
        """Changing the timestamp or body changes the signature."""
        base = sign_payload("secret", "1", "body")
        assert sign_payload("secret", "2", "body") != base
        assert sign_payload("secret", "1", "other") != base
        assert sign_payload("other", "1", "body") != base

    def test_verify_signature(self):
        """verify_signature accepts matching and rejects tampered signatures."""
        signature = sign_payload("secret", "1", "body")
        assert verify_signature("secret", "1", "body", signature)
        assert not verify_signature("secret", "1", "body", "0" * 64)


class TestWebhookDelivery:
    """Test event handling and delivery."""

    @pytest.mark.asyncio
    async def test_started_event_sends_rendered_body(self, db_session, session_factory, resource):
        """The in-use template is rendered and POSTed with signature headers."""
        _webhook(db_session, resource)
        endpoint = MockEndpoint()
        publisher = _publisher(session_factory, endpoint)

        publisher.handle_usage_event(_started(resource))
        assert publisher.pending_count() == 1
        await publisher.tick()

        assert len(endpoint.requests) == 1
        request = endpoint.requests[0]
        body = request.content.decode()
        payload = json.loads(body)
        assert payload == {"id": resource.id, "name": "Laser", "inUse": True, "at": "2025-01-28T10:00:00+00:00"}

        timestamp = request.headers["X-Webhook-Timestamp"]
        assert timestamp == str(to_epoch_ms(FIXED_NOW))
        assert request.headers["X-Webhook-Signature"] == sign_payload("whsec_test", timestamp, body)
        assert request.headers["Content-Type"] == "application/json"
        assert publisher.pending_count() == 0

    @pytest.mark.asyncio
    async def test_ended_event_uses_not_in_use_template(self, db_session, session_factory, resource):
        """Ended sessions render the not-in-use template."""
        _webhook(db_session, resource)
        endpoint = MockEndpoint()
        publisher = _publisher(session_factory, endpoint)

        publisher.handle_usage_event(_ended(resource))
        await publisher.tick()

        assert json.loads(endpoint.requests[0].content) == {"id": resource.id, "inUse": False}

    @pytest.mark.asyncio
    async def test_template_accepted_by_test_request_also_sends_on_usage(
        self, db_session, session_factory, resource
    ):
        """A template using {{user.name}} is delivered for live events, where no user is in context."""
        webhook = _webhook(db_session, resource, in_use_template='{"id": {{id}}, "by": "{{user.name}}"}')
        endpoint = MockEndpoint()
        publisher = _publisher(session_factory, endpoint)

        result = await publisher.test_webhook(db_session, resource.id, webhook.id)
        assert result["success"] is True

        publisher.handle_usage_event(_started(resource))
        assert publisher.pending_count() == 1
        await publisher.tick()

        assert json.loads(endpoint.requests[-1].content) == {"id": resource.id, "by": ""}

    @pytest.mark.asyncio
    async def test_url_and_headers_are_templated(self, db_session, session_factory, resource):
        """Template markers in the URL and header values are rendered."""
        _webhook(
            db_session, resource,
            url="https://hooks.example.com/resources/{{id}}",
            headers='{"X-Resource-Name": "{{name}}", "Authorization": "Bearer token"}',
            secret=None,
        )
        endpoint = MockEndpoint()
        publisher = _publisher(session_factory, endpoint)

        publisher.handle_usage_event(_started(resource))
        await publisher.tick()

        request = endpoint.requests[0]
        assert request.url.path == f"/resources/{resource.id}"
        assert request.headers["X-Resource-Name"] == "Laser"
        assert request.headers["Authorization"] == "Bearer token"
        assert "X-Webhook-Signature" not in request.headers
        assert "X-Webhook-Timestamp" in request.headers

    @pytest.mark.asyncio
    async def test_custom_signature_header(self, db_session, session_factory, resource):
        """The signature is sent under the configured header name."""
        _webhook(db_session, resource, signature_header="X-Hub-Signature")
        endpoint = MockEndpoint()
        publisher = _publisher(session_factory, endpoint)

        publisher.handle_usage_event(_started(resource))
        await publisher.tick()

        assert "X-Hub-Signature" in endpoint.requests[0].headers

    @pytest.mark.asyncio
    async def test_get_requests_have_no_body(self, db_session, session_factory, resource):
        """Only POST, PUT and PATCH carry the rendered body."""
        _webhook(db_session, resource, method="GET")
        endpoint = MockEndpoint()
        publisher = _publisher(session_factory, endpoint)

        publisher.handle_usage_event(_started(resource))
        await publisher.tick()

        request = endpoint.requests[0]
        assert request.method == "GET"
        assert request.content == b""

    @pytest.mark.asyncio
    async def test_inactive_webhooks_are_skipped(self, db_session, session_factory, resource):
        """Inactive webhooks produce no requests."""
        _webhook(db_session, resource, active=False)
        endpoint = MockEndpoint()
        publisher = _publisher(session_factory, endpoint)

        publisher.handle_usage_event(_started(resource))
        await publisher.tick()

        assert publisher.pending_count() == 0
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_each_active_webhook_gets_a_request(self, db_session, session_factory, resource):
        """One request per active webhook of the resource."""
        _webhook(db_session, resource, name="First")
        _webhook(db_session, resource, name="Second", url="https://other.example.com/hook")
        endpoint = MockEndpoint()
        publisher = _publisher(session_factory, endpoint)

        publisher.handle_usage_event(_started(resource))
        await publisher.tick()

        assert {request.url.host for request in endpoint.requests} == {"hooks.example.com", "other.example.com"}


class TestWebhookRetries:
    """Test the per-webhook retry policy."""

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self, db_session, session_factory, resource):
        """An endpoint failing max_retries - 1 times receives exactly max_retries requests."""
        _webhook(db_session, resource, max_retries=3)
        endpoint = MockEndpoint(statuses=[500, 503])
        publisher = _publisher(session_factory, endpoint)

        publisher.handle_usage_event(_started(resource))
        for _ in range(5):
            await publisher.tick()

        assert len(endpoint.requests) == 3
        assert publisher.pending_count() == 0

    @pytest.mark.asyncio
    async def test_always_failing_endpoint(self, db_session, session_factory, resource):
        """An always failing endpoint receives exactly max_retries requests."""
        _webhook(db_session, resource, max_retries=4)
        endpoint = MockEndpoint(default_status=500)
        publisher = _publisher(session_factory, endpoint)

        publisher.handle_usage_event(_started(resource))
        for _ in range(8):
            await publisher.tick()

        assert len(endpoint.requests) == 4
        assert publisher.pending_count() == 0

    @pytest.mark.asyncio
    async def test_retries_disabled(self, db_session, session_factory, resource):
        """With retries disabled a failing request is sent once."""
        _webhook(db_session, resource, retry_enabled=False)
        endpoint = MockEndpoint(default_status=500)
        publisher = _publisher(session_factory, endpoint)

        publisher.handle_usage_event(_started(resource))
        for _ in range(3):
            await publisher.tick()

        assert len(endpoint.requests) == 1

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self, db_session, session_factory, resource):
        """Transport errors count as failed attempts."""
        _webhook(db_session, resource, max_retries=2)
        calls = []

        def flaky(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(204)

        publisher = _publisher(session_factory, flaky)
        publisher.handle_usage_event(_started(resource))
        await publisher.tick()
        await publisher.tick()

        assert len(calls) == 2
        assert publisher.pending_count() == 0


class TestWebhookTest:
    """Test the one-off test request."""

    @pytest.mark.asyncio
    async def test_success(self, db_session, session_factory, resource):
        """A 2xx response reports success."""
        webhook = _webhook(db_session, resource, in_use_template='{"event": "{{event}}", "user": "{{user.name}}"}')
        endpoint = MockEndpoint()
        publisher = _publisher(session_factory, endpoint)

        result = await publisher.test_webhook(db_session, resource.id, webhook.id)

        assert result == {"success": True, "message": "Test webhook sent successfully"}
        assert json.loads(endpoint.requests[0].content) == {"event": "test", "user": "Test User"}
        assert publisher.pending_count() == 0

    @pytest.mark.asyncio
    async def test_http_error_status(self, db_session, session_factory, resource):
        """A non-2xx response is reported with its status code."""
        webhook = _webhook(db_session, resource)
        publisher = _publisher(session_factory, MockEndpoint(default_status=500))

        result = await publisher.test_webhook(db_session, resource.id, webhook.id)

        assert result == {"success": False, "message": "Webhook returned status 500"}

    @pytest.mark.asyncio
    async def test_malformed_headers(self, db_session, session_factory, resource):
        """Malformed stored headers fail the test before any request is sent."""
        webhook = _webhook(db_session, resource, headers='{"X-Broken": ')
        endpoint = MockEndpoint()
        publisher = _publisher(session_factory, endpoint)

        result = await publisher.test_webhook(db_session, resource.id, webhook.id)

        assert result["success"] is False
        assert result["message"].startswith("Invalid headers JSON")
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_unknown_webhook(self, db_session, session_factory, resource):
        """A webhook of another resource is not found."""
        publisher = _publisher(session_factory, MockEndpoint())

        result = await publisher.test_webhook(db_session, resource.id, 999)

        assert result["success"] is False
