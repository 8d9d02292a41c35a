# pyright: reportMissingTypeStubs=false
"""
Webhook Integration API endpoints.

Manage the outbound webhooks that notify external systems when a resource
goes in and out of use. URLs, header values and bodies are Jinja2
templates (see services.template_renderer).
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_webhook_publisher
from api.responses import ConnectionTestResponse
from auth.dependencies import UserContext, require_resource_manager
from core.database import get_db
from models import WebhookConfig
from services.webhook_config_service import WebhookConfigService
from services.template_renderer import TEMPLATE_SYNTAX_HELP
from services.webhook_publisher_service import WebhookPublisherService

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request/Response Models =====

class WebhookCreateRequest(BaseModel):
    """Request model for creating a webhook."""
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1)
    method: str = "POST"
    headers: Optional[Union[Dict[str, str], str]] = None  # JSON object or its string form
    in_use_template: str = Field("", description=TEMPLATE_SYNTAX_HELP)
    not_in_use_template: str = Field("", description=TEMPLATE_SYNTAX_HELP)
    active: bool = True
    retry_enabled: bool = False
    max_retries: int = Field(3, ge=0, le=10)
    retry_delay: int = Field(1000, ge=0)  # milliseconds
    signature_header: Optional[str] = Field(None, min_length=1, max_length=255)


class WebhookUpdateRequest(BaseModel):
    """Request model for updating a webhook."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    url: Optional[str] = Field(None, min_length=1)
    method: Optional[str] = None
    headers: Optional[Union[Dict[str, str], str]] = None
    in_use_template: Optional[str] = Field(None, description=TEMPLATE_SYNTAX_HELP)
    not_in_use_template: Optional[str] = Field(None, description=TEMPLATE_SYNTAX_HELP)
    active: Optional[bool] = None
    retry_enabled: Optional[bool] = None
    max_retries: Optional[int] = Field(None, ge=0, le=10)
    retry_delay: Optional[int] = Field(None, ge=0)
    signature_header: Optional[str] = Field(None, min_length=1, max_length=255)


class WebhookStatusRequest(BaseModel):
    """Request model for enabling or disabling a webhook."""
    active: bool


class WebhookResponse(BaseModel):
    """Response model for webhook."""
    id: int
    resource_id: int
    name: str
    url: str
    method: str
    headers: Optional[Dict[str, Any]]
    in_use_template: str
    not_in_use_template: str
    active: bool
    retry_enabled: bool
    max_retries: int
    retry_delay: int
    secret: Optional[str]
    signature_header: str
    created_at: datetime
    updated_at: datetime


class WebhookListResponse(BaseModel):
    """Response model for webhook list."""
    webhooks: List[WebhookResponse]


def _webhook_response(webhook: WebhookConfig) -> WebhookResponse:
    headers: Optional[Dict[str, Any]] = None
    if webhook.headers:
        try:
            parsed = json.loads(webhook.headers)
            headers = parsed if isinstance(parsed, dict) else None
        except ValueError:
            headers = None

    return WebhookResponse(
        id=webhook.id,
        resource_id=webhook.resource_id,
        name=webhook.name,
        url=webhook.url,
        method=webhook.method,
        headers=headers,
        in_use_template=webhook.in_use_template,
        not_in_use_template=webhook.not_in_use_template,
        active=webhook.active,
        retry_enabled=webhook.retry_enabled,
        max_retries=webhook.max_retries,
        retry_delay=webhook.retry_delay,
        secret=webhook.secret,
        signature_header=webhook.signature_header,
        created_at=webhook.created_at,
        updated_at=webhook.updated_at
    )


# ===== API Endpoints =====

@router.get("/resources/{resource_id}/webhooks", summary="List webhooks of a resource")
async def list_webhooks(
    resource_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> WebhookListResponse:
    """List a resource's webhooks ordered by id."""
    try:
        webhooks = WebhookConfigService.list_for_resource(db, resource_id)
        return WebhookListResponse(webhooks=[_webhook_response(webhook) for webhook in webhooks])
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to list webhooks for resource {resource_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list webhooks"
        )


@router.post("/resources/{resource_id}/webhooks", summary="Create a webhook", status_code=status.HTTP_201_CREATED)
async def create_webhook(
    resource_id: int,
    request: WebhookCreateRequest,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> WebhookResponse:
    """Create a webhook. A signing secret is generated automatically."""
    try:
        webhook = WebhookConfigService.create_webhook(
            db, resource_id, request.model_dump(exclude_none=True)
        )
        return _webhook_response(webhook)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to create webhook for resource {resource_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create webhook"
        )


@router.get("/resources/{resource_id}/webhooks/{webhook_id}", summary="Get a webhook")
async def get_webhook(
    resource_id: int,
    webhook_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> WebhookResponse:
    """Get a single webhook of a resource."""
    try:
        return _webhook_response(WebhookConfigService.get_webhook(db, resource_id, webhook_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get webhook {webhook_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get webhook"
        )


@router.put("/resources/{resource_id}/webhooks/{webhook_id}", summary="Update a webhook")
async def update_webhook(
    resource_id: int,
    webhook_id: int,
    request: WebhookUpdateRequest,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> WebhookResponse:
    """Update a webhook. Only the fields present in the request change."""
    try:
        webhook = WebhookConfigService.update_webhook(
            db, resource_id, webhook_id, request.model_dump(exclude_unset=True)
        )
        return _webhook_response(webhook)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to update webhook {webhook_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update webhook"
        )


@router.delete(
    "/resources/{resource_id}/webhooks/{webhook_id}",
    summary="Delete a webhook",
    status_code=status.HTTP_204_NO_CONTENT
)
async def delete_webhook(
    resource_id: int,
    webhook_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> None:
    """Delete a webhook."""
    try:
        WebhookConfigService.delete_webhook(db, resource_id, webhook_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to delete webhook {webhook_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete webhook"
        )


@router.put("/resources/{resource_id}/webhooks/{webhook_id}/status", summary="Enable or disable a webhook")
async def update_webhook_status(
    resource_id: int,
    webhook_id: int,
    request: WebhookStatusRequest,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> WebhookResponse:
    """Enable or disable a webhook. Disabled webhooks are skipped on usage events."""
    try:
        webhook = WebhookConfigService.update_status(db, resource_id, webhook_id, request.active)
        return _webhook_response(webhook)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to update status of webhook {webhook_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update webhook status"
        )


@router.post(
    "/resources/{resource_id}/webhooks/{webhook_id}/regenerate-secret",
    summary="Regenerate a webhook's signing secret"
)
async def regenerate_webhook_secret(
    resource_id: int,
    webhook_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> WebhookResponse:
    """Replace the webhook's signing secret. Receivers must be updated with the new secret."""
    try:
        webhook = WebhookConfigService.regenerate_secret(db, resource_id, webhook_id)
        return _webhook_response(webhook)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to regenerate secret of webhook {webhook_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to regenerate webhook secret"
        )


@router.post("/resources/{resource_id}/webhooks/{webhook_id}/test", summary="Send a test webhook")
async def test_webhook(
    resource_id: int,
    webhook_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db),
    webhook_publisher: WebhookPublisherService = Depends(get_webhook_publisher)
) -> ConnectionTestResponse:
    """Send the rendered "in use" template once with event "test" and report the outcome."""
    try:
        WebhookConfigService.get_webhook(db, resource_id, webhook_id)
        result = await webhook_publisher.test_webhook(db, resource_id, webhook_id)
        return ConnectionTestResponse(**result)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to test webhook {webhook_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to test webhook"
        )
