# pyright: reportMissingTypeStubs=false
"""
Makerspace Backend API

Tracks who is using which machine and tells external systems (MQTT brokers,
webhooks) when a machine goes in or out of use.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict
import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import introductions, mqtt, resources, usage, webhooks
from core.config import MQTT_RETRY_DELAY_MS, WEBHOOK_QUEUE_INTERVAL_MS
from core.constants import CORS_ORIGINS
from services.event_bus import EventBus
from services.mqtt_client_service import MqttClientService
from services.mqtt_publisher_service import MqttPublisherService
from services.notification_scheduler import NotificationQueueScheduler
from services.webhook_publisher_service import WebhookPublisherService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)

event_bus = EventBus()
mqtt_client = MqttClientService()
mqtt_publisher = MqttPublisherService(mqtt_client)
webhook_publisher = WebhookPublisherService()
mqtt_publisher.register(event_bus)
webhook_publisher.register(event_bus)
notification_scheduler = NotificationQueueScheduler([
    (mqtt_publisher, MQTT_RETRY_DELAY_MS),
    (webhook_publisher, WEBHOOK_QUEUE_INTERVAL_MS),
])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the notification queues for the lifetime of the app."""
    logger.info("🛠️ Makerspace API starting")
    try:
        await notification_scheduler.start_scheduler()
    except Exception as e:
        logger.exception(f"❌ Notification queues did not start: {e}")

    yield

    try:
        await notification_scheduler.stop_scheduler()
        await mqtt_client.disconnect_all()
        await webhook_publisher.aclose()
    except Exception as e:
        logger.exception(f"❌ Error during notification shutdown: {e}")
    logger.info("🛑 Makerspace API stopped")


app = FastAPI(
    title="Makerspace Backend",
    description="Machine usage tracking and notifications for makerspaces",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.event_bus = event_bus
app.state.mqtt_client = mqtt_client
app.state.mqtt_publisher = mqtt_publisher
app.state.webhook_publisher = webhook_publisher
app.state.notification_scheduler = notification_scheduler

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

_COMMON_RESPONSES: Dict[int, Dict[str, Any]] = {
    401: {"description": "Unauthorized"},
    403: {"description": "Forbidden"},
    404: {"description": "Not found"},
}

for router_module, tag, extra_codes in (
    (resources, "resources", ()),
    (usage, "usage", (400,)),
    (introductions, "introductions", (400, 409)),
    (mqtt, "mqtt", (400,)),
    (webhooks, "webhooks", (400,)),
):
    responses = dict(_COMMON_RESPONSES)
    for code in extra_codes:
        responses[code] = {"description": "Bad request" if code == 400 else "Conflict"}
    app.include_router(router_module.router, prefix="/api", tags=[tag], responses=responses)


@app.get("/", summary="API information")
async def root() -> dict[str, str]:
    return {"message": "Makerspace Backend API", "version": "1.0.0", "status": "running"}


@app.get("/health", summary="Health check")
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


def _error_response(status_code: int, detail: str, error_type: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "type": error_type})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return _error_response(500, "Internal server error", "internal_error")


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Domain validation failures that escaped a service become 400s."""
    logger.warning(f"ValueError on {request.url.path}: {exc}")
    return _error_response(400, str(exc), "validation_error")


@app.exception_handler(httpx.HTTPStatusError)
async def http_status_error_handler(request: Request, exc: httpx.HTTPStatusError):
    logger.exception(f"Upstream HTTP error: {exc}")
    return _error_response(502, "External service error", "external_service_error")
