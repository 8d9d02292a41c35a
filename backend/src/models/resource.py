"""
Resource model representing a physical machine or tool.

Resources (e.g., "Laser cutter", "Prusa MK4 #2") are used through usage
sessions. Users need a valid introduction for the resource, or for the group
it belongs to, before they can start a session.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, ForeignKey, TIMESTAMP, Text, Boolean, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Resource(Base):
    """
    Resource entity representing a single machine or tool.

    Deleting a resource removes its usage history, introducers, introductions
    and notification configuration.
    """

    __tablename__ = "resources"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the resource."""

    name: Mapped[str] = mapped_column(String(255))
    """Name of the resource (e.g., "Laser cutter")."""

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Optional description of the resource."""

    group_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("resource_groups.id", ondelete="SET NULL"), nullable=True, index=True
    )
    """Optional reference to the group this resource belongs to."""

    max_session_time_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Upper bound for the estimated duration given when starting a session. NULL means unlimited."""

    require_session_duration_estimation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    """Whether users must give an estimated duration when starting a session."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the resource was created."""

    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the resource was last updated."""

    # Relationships
    group = relationship("ResourceGroup", back_populates="resources")
    """Relationship to the ResourceGroup this resource belongs to."""

    usage_sessions = relationship(
        "UsageSession",
        back_populates="resource",
        cascade="all, delete-orphan"
    )
    """Usage sessions on this resource."""

    introducers = relationship(
        "ResourceIntroducer",
        back_populates="resource",
        cascade="all, delete-orphan"
    )
    """Users allowed to give introductions for this resource."""

    introductions = relationship(
        "ResourceIntroduction",
        back_populates="resource",
        cascade="all, delete-orphan"
    )
    """Resource-scope introductions."""

    mqtt_configs = relationship(
        "MqttResourceConfig",
        back_populates="resource",
        cascade="all, delete-orphan"
    )
    """MQTT notification targets for this resource."""

    webhook_configs = relationship(
        "WebhookConfig",
        back_populates="resource",
        cascade="all, delete-orphan"
    )
    """Webhook notification targets for this resource."""

    def __repr__(self) -> str:
        return f"<Resource(id={self.id}, name='{self.name}')>"
