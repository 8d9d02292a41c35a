"""
Webhook configuration service.

CRUD for per-resource webhooks, including generation and rotation of the
HMAC signing secret.
"""

import json
import logging
import secrets
from typing import Any, Dict, List

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from core.constants import (
    DEFAULT_WEBHOOK_SIGNATURE_HEADER,
    WEBHOOK_ALLOWED_METHODS,
    WEBHOOK_SECRET_BYTES,
    WEBHOOK_SECRET_PREFIX,
)
from models import Resource, WebhookConfig

logger = logging.getLogger(__name__)

# Fields a client may set on create/update
WEBHOOK_FIELDS = {
    "name",
    "url",
    "method",
    "headers",
    "in_use_template",
    "not_in_use_template",
    "active",
    "retry_enabled",
    "max_retries",
    "retry_delay",
    "signature_header",
}


def generate_webhook_secret() -> str:
    """Random signing secret, e.g. 'whsec_' followed by 48 hex characters."""
    return f"{WEBHOOK_SECRET_PREFIX}{secrets.token_hex(WEBHOOK_SECRET_BYTES)}"


class WebhookConfigService:
    """Service for webhook configuration management."""

    @staticmethod
    def list_for_resource(db: Session, resource_id: int) -> List[WebhookConfig]:
        """List a resource's webhooks ordered by id."""
        return db.query(WebhookConfig).filter(
            WebhookConfig.resource_id == resource_id
        ).order_by(WebhookConfig.id).all()

    @staticmethod
    def get_webhook(db: Session, resource_id: int, webhook_id: int) -> WebhookConfig:
        """
        Get a webhook of a resource.

        Raises:
            HTTPException: 404 if not found for this resource
        """
        webhook = db.query(WebhookConfig).filter(
            WebhookConfig.id == webhook_id,
            WebhookConfig.resource_id == resource_id
        ).first()
        if not webhook:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Webhook configuration {webhook_id} not found"
            )
        return webhook

    @staticmethod
    def create_webhook(db: Session, resource_id: int, data: Dict[str, Any]) -> WebhookConfig:
        """
        Create a webhook with a freshly generated secret.

        Args:
            db: Database session
            resource_id: Resource the webhook belongs to
            data: Webhook fields (see WEBHOOK_FIELDS)

        Returns:
            Created WebhookConfig

        Raises:
            HTTPException: 404 if resource not found, 400 for invalid method or headers
        """
        if not db.get(Resource, resource_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Resource {resource_id} not found"
            )

        values = WebhookConfigService._clean(data)
        values.setdefault("signature_header", DEFAULT_WEBHOOK_SIGNATURE_HEADER)

        webhook = WebhookConfig(resource_id=resource_id, secret=generate_webhook_secret(), **values)
        db.add(webhook)
        db.commit()
        db.refresh(webhook)

        logger.info(f"Created webhook {webhook.id} for resource {resource_id}")
        return webhook

    @staticmethod
    def update_webhook(db: Session, resource_id: int, webhook_id: int, data: Dict[str, Any]) -> WebhookConfig:
        """
        Update fields of a webhook. The secret is only changed by regenerate_secret().

        Raises:
            HTTPException: 404 if not found, 400 for invalid method or headers
        """
        webhook = WebhookConfigService.get_webhook(db, resource_id, webhook_id)
        for key, value in WebhookConfigService._clean(data).items():
            setattr(webhook, key, value)
        db.commit()
        db.refresh(webhook)

        logger.info(f"Updated webhook {webhook_id} for resource {resource_id}")
        return webhook

    @staticmethod
    def delete_webhook(db: Session, resource_id: int, webhook_id: int) -> None:
        """Delete a webhook."""
        webhook = WebhookConfigService.get_webhook(db, resource_id, webhook_id)
        db.delete(webhook)
        db.commit()
        logger.info(f"Deleted webhook {webhook_id} for resource {resource_id}")

    @staticmethod
    def update_status(db: Session, resource_id: int, webhook_id: int, active: bool) -> WebhookConfig:
        """Enable or disable a webhook."""
        webhook = WebhookConfigService.get_webhook(db, resource_id, webhook_id)
        webhook.active = active
        db.commit()
        db.refresh(webhook)
        logger.info(f"Webhook {webhook_id} {'activated' if active else 'deactivated'}")
        return webhook

    @staticmethod
    def regenerate_secret(db: Session, resource_id: int, webhook_id: int) -> WebhookConfig:
        """Replace the webhook's signing secret with a new random one."""
        webhook = WebhookConfigService.get_webhook(db, resource_id, webhook_id)
        webhook.secret = generate_webhook_secret()
        db.commit()
        db.refresh(webhook)
        logger.info(f"Regenerated secret for webhook {webhook_id}")
        return webhook

    @staticmethod
    def _clean(data: Dict[str, Any]) -> Dict[str, Any]:
        values = {key: value for key, value in data.items() if key in WEBHOOK_FIELDS}

        if "method" in values:
            method = str(values["method"]).upper()
            if method not in WEBHOOK_ALLOWED_METHODS:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"method must be one of {WEBHOOK_ALLOWED_METHODS}"
                )
            values["method"] = method

        headers = values.get("headers")
        if isinstance(headers, dict):
            values["headers"] = json.dumps(headers)
        elif headers:
            try:
                parsed = json.loads(headers)
            except ValueError:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="headers must be a JSON object"
                )
            if not isinstance(parsed, dict):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="headers must be a JSON object"
                )

        return values
