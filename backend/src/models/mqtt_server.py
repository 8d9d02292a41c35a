"""
MqttServer model.

Connection settings for an MQTT broker used to signal resource usage to
devices (e.g., switching a machine's power relay or status light).
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, Boolean, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class MqttServer(Base):
    """MQTT broker connection settings."""

    __tablename__ = "mqtt_servers"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    host: Mapped[str] = mapped_column(String(255))
    port: Mapped[int] = mapped_column(Integer, default=1883, nullable=False)
    use_tls: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    client_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Client identifier presented to the broker. Generated when not set."""

    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    resource_configs = relationship(
        "MqttResourceConfig",
        back_populates="server",
        cascade="all, delete-orphan"
    )

    @property
    def url(self) -> str:
        """Broker URL, e.g. mqtts://broker.local:8883."""
        scheme = "mqtts" if self.use_tls else "mqtt"
        return f"{scheme}://{self.host}:{self.port}"

    def __repr__(self) -> str:
        return f"<MqttServer(id={self.id}, host='{self.host}', port={self.port})>"
