"""
WebhookConfig model.

Per-resource outbound HTTP notification: target URL and method, header and
body templates, retry policy and optional HMAC signing secret.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, Boolean, Integer, ForeignKey, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class WebhookConfig(Base):
    """Webhook notification configuration for a resource."""

    __tablename__ = "webhook_configs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id", ondelete="CASCADE"), index=True)

    name: Mapped[str] = mapped_column(String(255))
    url: Mapped[str] = mapped_column(Text)
    """Target URL. Rendered as a template when it contains {{ }} markers."""

    method: Mapped[str] = mapped_column(String(10), default="POST", nullable=False)

    headers: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """JSON object of header name -> value template."""

    in_use_template: Mapped[str] = mapped_column(Text)
    not_in_use_template: Mapped[str] = mapped_column(Text)

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    """Inactive webhooks are skipped when usage events occur."""

    retry_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    retry_delay: Mapped[int] = mapped_column(Integer, default=1000, nullable=False)
    """Delay between delivery attempts in milliseconds."""

    secret: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """HMAC-SHA256 signing secret. Requests are unsigned when NULL."""

    signature_header: Mapped[str] = mapped_column(String(255), default="X-Webhook-Signature", nullable=False)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    resource = relationship("Resource", back_populates="webhook_configs")
