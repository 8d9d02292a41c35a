"""
MqttResourceConfig model.

Per-resource MQTT notification target: which server to publish to, and the
topic/message templates used when the resource goes in and out of use.
"""

from datetime import datetime
from sqlalchemy import String, Text, ForeignKey, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class MqttResourceConfig(Base):
    """MQTT notification configuration for a resource."""

    __tablename__ = "mqtt_resource_configs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id", ondelete="CASCADE"), index=True)
    server_id: Mapped[int] = mapped_column(ForeignKey("mqtt_servers.id", ondelete="CASCADE"), index=True)

    name: Mapped[str] = mapped_column(String(255), default="Default MQTT config")

    in_use_topic: Mapped[str] = mapped_column(String(255))
    """Topic template published to when a session starts."""

    in_use_message: Mapped[str] = mapped_column(Text)
    """Message template published when a session starts."""

    not_in_use_topic: Mapped[str] = mapped_column(String(255))
    """Topic template published to when a session ends."""

    not_in_use_message: Mapped[str] = mapped_column(Text)
    """Message template published when a session ends."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    resource = relationship("Resource", back_populates="mqtt_configs")
    server = relationship("MqttServer", back_populates="resource_configs")
