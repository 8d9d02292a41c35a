# pyright: reportMissingTypeStubs=false
"""
Introduction and Introducer API endpoints.

Introductions and introducer grants exist at resource scope
(/resources/{resource_id}/...) and at group scope
(/resource-groups/{group_id}/...).
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.responses import (
    IntroducerResponse,
    IntroductionHistoryItemResponse,
    IntroductionListResponse,
    IntroductionResponse,
    build_pagination,
)
from auth.dependencies import UserContext, get_current_user, require_resource_manager
from auth.permissions import require_group_introducer, require_resource_introducer
from core.constants import DEFAULT_PAGE, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from core.database import get_db
from models import IntroductionAction, ResourceIntroduction
from services.introducer_service import IntroducerService
from services.introduction_service import IntroductionService, latest_action

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request/Response Models =====

class IntroductionCreateRequest(BaseModel):
    """Request model for recording an introduction."""
    user_id: int


class RevocationRequest(BaseModel):
    """Request model for revoking or restoring an introduction."""
    comment: Optional[str] = None


class IntroductionStatusResponse(BaseModel):
    """Response model for the revocation status of an introduction."""
    introduction_id: int
    is_revoked: bool
    is_valid: bool


class IntroductionHistoryResponse(BaseModel):
    """Response model for the history of an introduction."""
    history: List[IntroductionHistoryItemResponse]


class IntroducerCreateRequest(BaseModel):
    """Request model for granting introducer rights."""
    user_id: int


class IntroducerListResponse(BaseModel):
    """Response model for introducer list."""
    introducers: List[IntroducerResponse]


class UserIntroductionListResponse(BaseModel):
    """Response model for the introductions a user has received."""
    introductions: List[IntroductionResponse]


def _introduction_response(introduction: ResourceIntroduction) -> IntroductionResponse:
    revoked = latest_action(introduction.history) == IntroductionAction.REVOKE
    return IntroductionResponse.from_model(introduction, is_revoked=revoked)


def _status_response(introduction: ResourceIntroduction) -> IntroductionStatusResponse:
    return IntroductionStatusResponse(
        introduction_id=introduction.id,
        is_revoked=latest_action(introduction.history) == IntroductionAction.REVOKE,
        is_valid=IntroductionService.is_valid(introduction)
    )


def _server_error(message: str, e: Exception) -> HTTPException:
    logger.exception(f"{message}: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=message
    )


# ===== Resource Introductions =====

@router.get("/resources/{resource_id}/introductions", summary="List introductions of a resource")
async def list_resource_introductions(
    resource_id: int,
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: UserContext = Depends(require_resource_introducer()),
    db: Session = Depends(get_db)
) -> IntroductionListResponse:
    """List introductions of a resource, most recently completed first."""
    try:
        introductions, total = IntroductionService.list_for_resource(db, resource_id, page=page, limit=limit)
        return IntroductionListResponse(
            introductions=[_introduction_response(introduction) for introduction in introductions],
            pagination=build_pagination(page, limit, total)
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to list introductions", e)


@router.post(
    "/resources/{resource_id}/introductions",
    summary="Record an introduction for a resource",
    status_code=status.HTTP_201_CREATED
)
async def create_resource_introduction(
    resource_id: int,
    request: IntroductionCreateRequest,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> IntroductionResponse:
    """Record that the current user introduced request.user_id to the resource."""
    try:
        introduction = IntroductionService.create_introduction(
            db, resource_id, tutor_user_id=current_user.user_id, receiver_user_id=request.user_id
        )
        return _introduction_response(introduction)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to create introduction", e)


@router.get("/resources/{resource_id}/introductions/{introduction_id}", summary="Get an introduction")
async def get_resource_introduction(
    resource_id: int,
    introduction_id: int,
    current_user: UserContext = Depends(require_resource_introducer()),
    db: Session = Depends(get_db)
) -> IntroductionResponse:
    """Get a single introduction of a resource."""
    try:
        introduction = IntroductionService.get_resource_introduction(db, resource_id, introduction_id)
        return _introduction_response(introduction)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to get introduction", e)


@router.delete(
    "/resources/{resource_id}/introductions/{introduction_id}",
    summary="Delete an introduction",
    status_code=status.HTTP_204_NO_CONTENT
)
async def delete_resource_introduction(
    resource_id: int,
    introduction_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> None:
    """Delete an introduction together with its history."""
    try:
        IntroductionService.get_resource_introduction(db, resource_id, introduction_id)
        IntroductionService.delete_introduction(db, introduction_id, current_user.user_id)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to delete introduction", e)


@router.post("/resources/{resource_id}/introductions/{introduction_id}/revoke", summary="Revoke an introduction")
async def revoke_resource_introduction(
    resource_id: int,
    introduction_id: int,
    request: Optional[RevocationRequest] = None,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> IntroductionHistoryItemResponse:
    """Revoke an introduction. The user can no longer start sessions through it."""
    try:
        IntroductionService.get_resource_introduction(db, resource_id, introduction_id)
        item = IntroductionService.revoke_introduction(
            db, introduction_id, current_user.user_id, comment=request.comment if request else None
        )
        return IntroductionHistoryItemResponse.from_model(item)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to revoke introduction", e)


@router.post("/resources/{resource_id}/introductions/{introduction_id}/unrevoke", summary="Restore an introduction")
async def unrevoke_resource_introduction(
    resource_id: int,
    introduction_id: int,
    request: Optional[RevocationRequest] = None,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> IntroductionHistoryItemResponse:
    """Restore a revoked introduction."""
    try:
        IntroductionService.get_resource_introduction(db, resource_id, introduction_id)
        item = IntroductionService.unrevoke_introduction(
            db, introduction_id, current_user.user_id, comment=request.comment if request else None
        )
        return IntroductionHistoryItemResponse.from_model(item)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to restore introduction", e)


@router.get("/resources/{resource_id}/introductions/{introduction_id}/history", summary="Get introduction history")
async def get_resource_introduction_history(
    resource_id: int,
    introduction_id: int,
    current_user: UserContext = Depends(require_resource_introducer()),
    db: Session = Depends(get_db)
) -> IntroductionHistoryResponse:
    """Get the revoke/unrevoke history of an introduction, oldest first."""
    try:
        IntroductionService.get_resource_introduction(db, resource_id, introduction_id)
        history = IntroductionService.get_history(db, introduction_id)
        return IntroductionHistoryResponse(
            history=[IntroductionHistoryItemResponse.from_model(item) for item in history]
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to get introduction history", e)


@router.get("/resources/{resource_id}/introductions/{introduction_id}/status", summary="Get introduction status")
async def get_resource_introduction_status(
    resource_id: int,
    introduction_id: int,
    current_user: UserContext = Depends(require_resource_introducer()),
    db: Session = Depends(get_db)
) -> IntroductionStatusResponse:
    """Get whether an introduction is revoked."""
    try:
        introduction = IntroductionService.get_resource_introduction(db, resource_id, introduction_id)
        return _status_response(introduction)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to get introduction status", e)


# ===== Group Introductions =====

@router.get("/resource-groups/{group_id}/introductions", summary="List introductions of a resource group")
async def list_group_introductions(
    group_id: int,
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: UserContext = Depends(require_group_introducer()),
    db: Session = Depends(get_db)
) -> IntroductionListResponse:
    """List introductions of a group, most recently completed first."""
    try:
        introductions, total = IntroductionService.list_for_group(db, group_id, page=page, limit=limit)
        return IntroductionListResponse(
            introductions=[_introduction_response(introduction) for introduction in introductions],
            pagination=build_pagination(page, limit, total)
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to list group introductions", e)


@router.post(
    "/resource-groups/{group_id}/introductions",
    summary="Record an introduction for a resource group",
    status_code=status.HTTP_201_CREATED
)
async def create_group_introduction(
    group_id: int,
    request: IntroductionCreateRequest,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> IntroductionResponse:
    """Record that the current user introduced request.user_id to every resource of the group."""
    try:
        introduction = IntroductionService.create_group_introduction(
            db, group_id, tutor_user_id=current_user.user_id, receiver_user_id=request.user_id
        )
        return _introduction_response(introduction)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to create group introduction", e)


@router.delete(
    "/resource-groups/{group_id}/introductions/{introduction_id}",
    summary="Delete a group introduction",
    status_code=status.HTTP_204_NO_CONTENT
)
async def delete_group_introduction(
    group_id: int,
    introduction_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> None:
    """Delete a group introduction together with its history."""
    try:
        IntroductionService.get_group_introduction(db, group_id, introduction_id)
        IntroductionService.delete_introduction(db, introduction_id, current_user.user_id)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to delete group introduction", e)


@router.post("/resource-groups/{group_id}/introductions/{introduction_id}/revoke", summary="Revoke a group introduction")
async def revoke_group_introduction(
    group_id: int,
    introduction_id: int,
    request: Optional[RevocationRequest] = None,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> IntroductionHistoryItemResponse:
    """Revoke a group introduction."""
    try:
        IntroductionService.get_group_introduction(db, group_id, introduction_id)
        item = IntroductionService.revoke_introduction(
            db, introduction_id, current_user.user_id, comment=request.comment if request else None
        )
        return IntroductionHistoryItemResponse.from_model(item)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to revoke group introduction", e)


@router.post("/resource-groups/{group_id}/introductions/{introduction_id}/unrevoke", summary="Restore a group introduction")
async def unrevoke_group_introduction(
    group_id: int,
    introduction_id: int,
    request: Optional[RevocationRequest] = None,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> IntroductionHistoryItemResponse:
    """Restore a revoked group introduction."""
    try:
        IntroductionService.get_group_introduction(db, group_id, introduction_id)
        item = IntroductionService.unrevoke_introduction(
            db, introduction_id, current_user.user_id, comment=request.comment if request else None
        )
        return IntroductionHistoryItemResponse.from_model(item)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to restore group introduction", e)


@router.get("/resource-groups/{group_id}/introductions/{introduction_id}/history", summary="Get group introduction history")
async def get_group_introduction_history(
    group_id: int,
    introduction_id: int,
    current_user: UserContext = Depends(require_group_introducer()),
    db: Session = Depends(get_db)
) -> IntroductionHistoryResponse:
    """Get the revoke/unrevoke history of a group introduction, oldest first."""
    try:
        IntroductionService.get_group_introduction(db, group_id, introduction_id)
        history = IntroductionService.get_history(db, introduction_id)
        return IntroductionHistoryResponse(
            history=[IntroductionHistoryItemResponse.from_model(item) for item in history]
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to get group introduction history", e)


@router.get("/resource-groups/{group_id}/introductions/{introduction_id}/status", summary="Get group introduction status")
async def get_group_introduction_status(
    group_id: int,
    introduction_id: int,
    current_user: UserContext = Depends(require_group_introducer()),
    db: Session = Depends(get_db)
) -> IntroductionStatusResponse:
    """Get whether a group introduction is revoked."""
    try:
        introduction = IntroductionService.get_group_introduction(db, group_id, introduction_id)
        return _status_response(introduction)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to get group introduction status", e)


# ===== Introducers =====

@router.get("/resources/{resource_id}/introducers", summary="List introducers of a resource")
async def list_resource_introducers(
    resource_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> IntroducerListResponse:
    """List users allowed to give introductions for the resource."""
    try:
        introducers = IntroducerService.list_resource_introducers(db, resource_id)
        return IntroducerListResponse(introducers=[
            IntroducerResponse(
                id=introducer.id,
                user_id=introducer.user_id,
                resource_id=introducer.resource_id,
                created_at=introducer.created_at
            )
            for introducer in introducers
        ])
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to list introducers", e)


@router.post(
    "/resources/{resource_id}/introducers",
    summary="Grant introducer rights on a resource",
    status_code=status.HTTP_201_CREATED
)
async def add_resource_introducer(
    resource_id: int,
    request: IntroducerCreateRequest,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> IntroducerResponse:
    """Allow a user to give introductions for the resource."""
    try:
        introducer = IntroducerService.add_resource_introducer(db, resource_id, request.user_id)
        return IntroducerResponse(
            id=introducer.id,
            user_id=introducer.user_id,
            resource_id=introducer.resource_id,
            created_at=introducer.created_at
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to add introducer", e)


@router.delete(
    "/resources/{resource_id}/introducers/{user_id}",
    summary="Remove introducer rights on a resource",
    status_code=status.HTTP_204_NO_CONTENT
)
async def remove_resource_introducer(
    resource_id: int,
    user_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> None:
    """Remove a user's introducer rights on the resource."""
    try:
        IntroducerService.remove_resource_introducer(db, resource_id, user_id)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to remove introducer", e)


@router.get("/resource-groups/{group_id}/introducers", summary="List introducers of a resource group")
async def list_group_introducers(
    group_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> IntroducerListResponse:
    """List users allowed to give introductions for every resource of the group."""
    try:
        introducers = IntroducerService.list_group_introducers(db, group_id)
        return IntroducerListResponse(introducers=[
            IntroducerResponse(
                id=introducer.id,
                user_id=introducer.user_id,
                group_id=introducer.group_id,
                created_at=introducer.created_at
            )
            for introducer in introducers
        ])
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to list group introducers", e)


@router.post(
    "/resource-groups/{group_id}/introducers",
    summary="Grant introducer rights on a resource group",
    status_code=status.HTTP_201_CREATED
)
async def add_group_introducer(
    group_id: int,
    request: IntroducerCreateRequest,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> IntroducerResponse:
    """Allow a user to give introductions for every resource of the group."""
    try:
        introducer = IntroducerService.add_group_introducer(db, group_id, request.user_id)
        return IntroducerResponse(
            id=introducer.id,
            user_id=introducer.user_id,
            group_id=introducer.group_id,
            created_at=introducer.created_at
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to add group introducer", e)


@router.delete(
    "/resource-groups/{group_id}/introducers/{user_id}",
    summary="Remove introducer rights on a resource group",
    status_code=status.HTTP_204_NO_CONTENT
)
async def remove_group_introducer(
    group_id: int,
    user_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> None:
    """Remove a user's introducer rights on the group."""
    try:
        IntroducerService.remove_group_introducer(db, group_id, user_id)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to remove group introducer", e)


# ===== Current User =====

@router.get("/users/me/introductions", summary="List my introductions")
async def list_my_introductions(
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> UserIntroductionListResponse:
    """List every introduction the current user has received, with revocation state."""
    try:
        introductions = IntroductionService.list_for_user(db, current_user.user_id)
        return UserIntroductionListResponse(
            introductions=[_introduction_response(introduction) for introduction in introductions]
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error("Failed to list introductions", e)
