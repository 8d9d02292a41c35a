# pyright: reportMissingTypeStubs=false
"""
Usage Session API endpoints.

Start, end and extend sessions on a resource and browse usage history.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_event_bus
from api.responses import UsageSessionListResponse, UsageSessionResponse, build_pagination
from auth.dependencies import UserContext, get_current_user
from core.constants import DEFAULT_PAGE, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from core.database import get_db
from services.event_bus import EventBus
from services.resource_service import ResourceService
from services.usage_service import UsageService

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request/Response Models =====

class StartSessionRequest(BaseModel):
    """Request model for starting a usage session."""
    notes: Optional[str] = None
    force_take_over: bool = False
    estimated_duration_minutes: Optional[int] = None


class EndSessionRequest(BaseModel):
    """Request model for ending a usage session."""
    notes: Optional[str] = None


class ExtendSessionRequest(BaseModel):
    """Request model for extending a usage session."""
    additional_minutes: int = Field(..., ge=1)


class ActiveSessionResponse(BaseModel):
    """Response model for the active session lookup."""
    is_in_use: bool
    session: Optional[UsageSessionResponse] = None


# ===== API Endpoints =====

@router.post("/resources/{resource_id}/usage/start", summary="Start a usage session")
async def start_session(
    resource_id: int,
    request: Optional[StartSessionRequest] = None,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus)
) -> UsageSessionResponse:
    """Start using a resource. Requires a valid introduction (or introducer/manage rights)."""
    body = request or StartSessionRequest()
    try:
        session = UsageService.start_session(
            db,
            event_bus,
            resource_id,
            current_user.user_id,
            notes=body.notes,
            force_take_over=body.force_take_over,
            estimated_duration_minutes=body.estimated_duration_minutes
        )
        return UsageSessionResponse.from_model(session)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to start session on resource {resource_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start usage session"
        )


@router.put("/resources/{resource_id}/usage/end", summary="End the active usage session")
async def end_session(
    resource_id: int,
    request: Optional[EndSessionRequest] = None,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus)
) -> UsageSessionResponse:
    """End the active session. Only its owner or a manager may end it."""
    body = request or EndSessionRequest()
    try:
        session = UsageService.end_session(
            db, event_bus, resource_id, current_user.user_id, notes=body.notes
        )
        return UsageSessionResponse.from_model(session)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to end session on resource {resource_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to end usage session"
        )


@router.put("/resources/{resource_id}/usage/extend", summary="Extend the active usage session")
async def extend_session(
    resource_id: int,
    request: ExtendSessionRequest,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> UsageSessionResponse:
    """Add minutes to the estimated duration of the active session."""
    try:
        session = UsageService.extend_session(
            db, resource_id, current_user.user_id, request.additional_minutes
        )
        return UsageSessionResponse.from_model(session)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to extend session on resource {resource_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to extend usage session"
        )


@router.get("/resources/{resource_id}/usage/active", summary="Get the active usage session")
async def get_active_session(
    resource_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> ActiveSessionResponse:
    """Return whether the resource is in use and, if so, its active session."""
    try:
        ResourceService.get_resource(db, resource_id)
        session = UsageService.get_active_session(db, resource_id)
        if session is None:
            return ActiveSessionResponse(is_in_use=False)
        return ActiveSessionResponse(is_in_use=True, session=UsageSessionResponse.from_model(session))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get active session for resource {resource_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get active session"
        )


@router.get("/resources/{resource_id}/usage/history", summary="Get usage history of a resource")
async def get_resource_history(
    resource_id: int,
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    user_id: Optional[int] = None,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> UsageSessionListResponse:
    """
    Get usage sessions of a resource, newest first.

    Managers see every session and may filter by user_id. Other users only
    see their own sessions.
    """
    try:
        if not current_user.is_resource_manager():
            if user_id is not None and user_id != current_user.user_id:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="You can only view your own usage history"
                )
            user_id = current_user.user_id

        sessions, total = UsageService.get_resource_usage_history(
            db, resource_id, page=page, limit=limit, user_id=user_id
        )
        return UsageSessionListResponse(
            sessions=[UsageSessionResponse.from_model(session) for session in sessions],
            pagination=build_pagination(page, limit, total)
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get usage history for resource {resource_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get usage history"
        )


@router.get("/users/me/usage", summary="Get my usage history")
async def get_my_history(
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> UsageSessionListResponse:
    """Get the current user's sessions across all resources, newest first."""
    try:
        sessions, total = UsageService.get_user_usage_history(
            db, current_user.user_id, page=page, limit=limit
        )
        return UsageSessionListResponse(
            sessions=[UsageSessionResponse.from_model(session) for session in sessions],
            pagination=build_pagination(page, limit, total)
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get usage history for user {current_user.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get usage history"
        )
