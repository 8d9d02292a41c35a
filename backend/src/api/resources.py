# pyright: reportMissingTypeStubs=false
"""
Resource and Resource Group Management API endpoints.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.responses import PaginationMeta, build_pagination
from auth.dependencies import UserContext, get_current_user, require_resource_manager
from core.constants import DEFAULT_PAGE, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from core.database import get_db
from models import Resource, ResourceGroup
from services.resource_service import ResourceService

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request/Response Models =====

class ResourceCreateRequest(BaseModel):
    """Request model for creating a resource."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    group_id: Optional[int] = None
    max_session_time_minutes: Optional[int] = Field(None, ge=1)
    require_session_duration_estimation: bool = False


class ResourceUpdateRequest(BaseModel):
    """Request model for updating a resource."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    max_session_time_minutes: Optional[int] = Field(None, ge=1)
    require_session_duration_estimation: Optional[bool] = None


class ResourceResponse(BaseModel):
    """Response model for resource."""
    id: int
    name: str
    description: Optional[str]
    group_id: Optional[int]
    max_session_time_minutes: Optional[int]
    require_session_duration_estimation: bool
    created_at: datetime
    updated_at: datetime


class ResourceListResponse(BaseModel):
    """Response model for resource list."""
    resources: List[ResourceResponse]
    pagination: PaginationMeta


class ResourceGroupCreateRequest(BaseModel):
    """Request model for creating a resource group."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class ResourceGroupUpdateRequest(BaseModel):
    """Request model for updating a resource group."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class ResourceGroupResponse(BaseModel):
    """Response model for resource group."""
    id: int
    name: str
    description: Optional[str]
    resource_ids: List[int]
    created_at: datetime
    updated_at: datetime


class ResourceGroupListResponse(BaseModel):
    """Response model for resource group list."""
    groups: List[ResourceGroupResponse]


def _resource_response(resource: Resource) -> ResourceResponse:
    return ResourceResponse(
        id=resource.id,
        name=resource.name,
        description=resource.description,
        group_id=resource.group_id,
        max_session_time_minutes=resource.max_session_time_minutes,
        require_session_duration_estimation=resource.require_session_duration_estimation,
        created_at=resource.created_at,
        updated_at=resource.updated_at
    )


def _group_response(group: ResourceGroup) -> ResourceGroupResponse:
    return ResourceGroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        resource_ids=sorted(resource.id for resource in group.resources),
        created_at=group.created_at,
        updated_at=group.updated_at
    )


# ===== Resource Endpoints =====

@router.get("/resources", summary="List resources")
async def list_resources(
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    group_id: Optional[int] = None,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> ResourceListResponse:
    """List resources, optionally filtered by group."""
    try:
        resources, total = ResourceService.list_resources(db, page=page, limit=limit, group_id=group_id)
        return ResourceListResponse(
            resources=[_resource_response(resource) for resource in resources],
            pagination=build_pagination(page, limit, total)
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to list resources: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list resources"
        )


@router.post("/resources", summary="Create a resource", status_code=status.HTTP_201_CREATED)
async def create_resource(
    request: ResourceCreateRequest,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> ResourceResponse:
    """Create a new resource."""
    try:
        resource = ResourceService.create_resource(
            db,
            name=request.name,
            description=request.description,
            group_id=request.group_id,
            max_session_time_minutes=request.max_session_time_minutes,
            require_session_duration_estimation=request.require_session_duration_estimation
        )
        return _resource_response(resource)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to create resource: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create resource"
        )


@router.get("/resources/{resource_id}", summary="Get a resource")
async def get_resource(
    resource_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> ResourceResponse:
    """Get a single resource."""
    try:
        return _resource_response(ResourceService.get_resource(db, resource_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get resource {resource_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get resource"
        )


@router.put("/resources/{resource_id}", summary="Update a resource")
async def update_resource(
    resource_id: int,
    request: ResourceUpdateRequest,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> ResourceResponse:
    """Update a resource."""
    try:
        resource = ResourceService.update_resource(
            db,
            resource_id,
            name=request.name,
            description=request.description,
            max_session_time_minutes=request.max_session_time_minutes,
            require_session_duration_estimation=request.require_session_duration_estimation
        )
        return _resource_response(resource)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to update resource {resource_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update resource"
        )


@router.delete("/resources/{resource_id}", summary="Delete a resource", status_code=status.HTTP_204_NO_CONTENT)
async def delete_resource(
    resource_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> None:
    """Delete a resource with its usage history, introductions and integrations."""
    try:
        ResourceService.delete_resource(db, resource_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to delete resource {resource_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete resource"
        )


# ===== Resource Group Endpoints =====

@router.get("/resource-groups", summary="List resource groups")
async def list_groups(
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> ResourceGroupListResponse:
    """List all resource groups."""
    try:
        groups = ResourceService.list_groups(db)
        return ResourceGroupListResponse(groups=[_group_response(group) for group in groups])
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to list resource groups: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list resource groups"
        )


@router.post("/resource-groups", summary="Create a resource group", status_code=status.HTTP_201_CREATED)
async def create_group(
    request: ResourceGroupCreateRequest,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> ResourceGroupResponse:
    """Create a new resource group."""
    try:
        group = ResourceService.create_group(db, name=request.name, description=request.description)
        return _group_response(group)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to create resource group: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create resource group"
        )


@router.get("/resource-groups/{group_id}", summary="Get a resource group")
async def get_group(
    group_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> ResourceGroupResponse:
    """Get a single resource group with its member resource ids."""
    try:
        return _group_response(ResourceService.get_group(db, group_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get resource group {group_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get resource group"
        )


@router.put("/resource-groups/{group_id}", summary="Update a resource group")
async def update_group(
    group_id: int,
    request: ResourceGroupUpdateRequest,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> ResourceGroupResponse:
    """Update a resource group."""
    try:
        group = ResourceService.update_group(
            db, group_id, name=request.name, description=request.description
        )
        return _group_response(group)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to update resource group {group_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update resource group"
        )


@router.delete("/resource-groups/{group_id}", summary="Delete a resource group", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(
    group_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> None:
    """Delete a resource group. Member resources are kept and detached."""
    try:
        ResourceService.delete_group(db, group_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to delete resource group {group_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete resource group"
        )


@router.put("/resource-groups/{group_id}/resources/{resource_id}", summary="Add a resource to a group")
async def add_resource_to_group(
    group_id: int,
    resource_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> ResourceResponse:
    """Move a resource into a group."""
    try:
        return _resource_response(ResourceService.assign_to_group(db, resource_id, group_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to add resource {resource_id} to group {group_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add resource to group"
        )


@router.delete("/resource-groups/{group_id}/resources/{resource_id}", summary="Remove a resource from a group")
async def remove_resource_from_group(
    group_id: int,
    resource_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> ResourceResponse:
    """Detach a resource from its group."""
    try:
        resource = ResourceService.get_resource(db, resource_id)
        if resource.group_id != group_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Resource {resource_id} is not in group {group_id}"
            )
        return _resource_response(ResourceService.remove_from_group(db, resource_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to remove resource {resource_id} from group {group_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to remove resource from group"
        )
