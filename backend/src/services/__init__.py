"""
Services package for shared business logic.

This package contains service classes that encapsulate business logic
shared across multiple API endpoints.
"""

from .resource_service import ResourceService
from .introduction_service import IntroductionService
from .introducer_service import IntroducerService
from .usage_service import UsageService
from .webhook_config_service import WebhookConfigService
from .mqtt_config_service import MqttServerService, MqttResourceConfigService

__all__ = [
    "ResourceService",
    "IntroductionService",
    "IntroducerService",
    "UsageService",
    "WebhookConfigService",
    "MqttServerService",
    "MqttResourceConfigService",
]
