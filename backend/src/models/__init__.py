# Package initialization
# Import all models to ensure relationships are properly established
from .user import User
from .resource_group import ResourceGroup
from .resource import Resource
from .usage_session import UsageSession
from .resource_introducer import ResourceIntroducer
from .resource_group_introducer import ResourceGroupIntroducer
from .resource_introduction import ResourceIntroduction
from .introduction_history_item import IntroductionHistoryItem, IntroductionAction
from .mqtt_server import MqttServer
from .mqtt_resource_config import MqttResourceConfig
from .webhook_config import WebhookConfig

__all__ = [
    "User",
    "ResourceGroup",
    "Resource",
    "UsageSession",
    "ResourceIntroducer",
    "ResourceGroupIntroducer",
    "ResourceIntroduction",
    "IntroductionHistoryItem",
    "IntroductionAction",
    "MqttServer",
    "MqttResourceConfig",
    "WebhookConfig",
]
