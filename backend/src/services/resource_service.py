"""
Resource service for resource and resource group management.

This service handles:
- Resource CRUD
- Resource group CRUD
- Assigning resources to groups and removing them again
"""

import logging
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from core.constants import DEFAULT_PAGE, DEFAULT_PAGE_SIZE
from models import Resource, ResourceGroup
from utils.query_helpers import paginate

logger = logging.getLogger(__name__)


class ResourceService:
    """Service for resource and resource group management."""

    # ===== Resources =====

    @staticmethod
    def list_resources(
        db: Session,
        page: int = DEFAULT_PAGE,
        limit: int = DEFAULT_PAGE_SIZE,
        group_id: Optional[int] = None
    ) -> Tuple[List[Resource], int]:
        """
        List resources ordered by name.

        Args:
            db: Database session
            page: 1-based page number
            limit: Page size
            group_id: Only list resources of this group

        Returns:
            Tuple of (resources, total count)
        """
        query = db.query(Resource)
        if group_id is not None:
            query = query.filter(Resource.group_id == group_id)
        return paginate(query.order_by(Resource.name, Resource.id), page, limit)

    @staticmethod
    def get_resource(db: Session, resource_id: int) -> Resource:
        """
        Get a resource by ID.

        Raises:
            HTTPException: 404 if not found
        """
        resource = db.get(Resource, resource_id)
        if not resource:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Resource {resource_id} not found"
            )
        return resource

    @staticmethod
    def create_resource(
        db: Session,
        name: str,
        description: Optional[str] = None,
        group_id: Optional[int] = None,
        max_session_time_minutes: Optional[int] = None,
        require_session_duration_estimation: bool = False
    ) -> Resource:
        """
        Create a resource.

        Raises:
            HTTPException: 404 if group_id refers to a missing group
        """
        group = ResourceService.get_group(db, group_id) if group_id is not None else None

        resource = Resource(
            name=name,
            description=description,
            group=group,
            max_session_time_minutes=max_session_time_minutes,
            require_session_duration_estimation=require_session_duration_estimation
        )
        db.add(resource)
        db.commit()
        db.refresh(resource)

        logger.info(f"Created resource {resource.id} ({resource.name})")
        return resource

    @staticmethod
    def update_resource(
        db: Session,
        resource_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        max_session_time_minutes: Optional[int] = None,
        require_session_duration_estimation: Optional[bool] = None
    ) -> Resource:
        """
        Update a resource. Fields left as None are unchanged.

        Group membership is changed through assign_to_group() and
        remove_from_group().
        """
        resource = ResourceService.get_resource(db, resource_id)

        if name is not None:
            resource.name = name
        if description is not None:
            resource.description = description
        if max_session_time_minutes is not None:
            resource.max_session_time_minutes = max_session_time_minutes
        if require_session_duration_estimation is not None:
            resource.require_session_duration_estimation = require_session_duration_estimation

        db.commit()
        db.refresh(resource)

        logger.info(f"Updated resource {resource_id}")
        return resource

    @staticmethod
    def delete_resource(db: Session, resource_id: int) -> None:
        """Delete a resource with its sessions, introductions and integrations."""
        resource = ResourceService.get_resource(db, resource_id)
        db.delete(resource)
        db.commit()
        logger.info(f"Deleted resource {resource_id}")

    @staticmethod
    def assign_to_group(db: Session, resource_id: int, group_id: int) -> Resource:
        """
        Move a resource into a group.

        Raises:
            HTTPException: 404 if the resource or group does not exist
        """
        resource = ResourceService.get_resource(db, resource_id)
        group = ResourceService.get_group(db, group_id)

        # Keeps an already loaded group.resources in sync
        resource.group = group
        db.commit()
        db.refresh(resource)

        logger.info(f"Assigned resource {resource_id} to group {group_id}")
        return resource

    @staticmethod
    def remove_from_group(db: Session, resource_id: int) -> Resource:
        """
        Detach a resource from its group.

        Raises:
            HTTPException: 404 if not found, 400 if the resource is not in a group
        """
        resource = ResourceService.get_resource(db, resource_id)
        if resource.group_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Resource is not in a group"
            )

        previous_group_id = resource.group_id
        resource.group = None
        db.commit()
        db.refresh(resource)

        logger.info(f"Removed resource {resource_id} from group {previous_group_id}")
        return resource

    # ===== Resource groups =====

    @staticmethod
    def list_groups(db: Session) -> List[ResourceGroup]:
        """List resource groups ordered by name."""
        return db.query(ResourceGroup).order_by(ResourceGroup.name, ResourceGroup.id).all()

    @staticmethod
    def get_group(db: Session, group_id: int) -> ResourceGroup:
        """
        Get a resource group by ID.

        Raises:
            HTTPException: 404 if not found
        """
        group = db.get(ResourceGroup, group_id)
        if not group:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Resource group {group_id} not found"
            )
        return group

    @staticmethod
    def create_group(db: Session, name: str, description: Optional[str] = None) -> ResourceGroup:
        """Create a resource group."""
        group = ResourceGroup(name=name, description=description)
        db.add(group)
        db.commit()
        db.refresh(group)

        logger.info(f"Created resource group {group.id} ({group.name})")
        return group

    @staticmethod
    def update_group(
        db: Session,
        group_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> ResourceGroup:
        """Update a resource group. Fields left as None are unchanged."""
        group = ResourceService.get_group(db, group_id)

        if name is not None:
            group.name = name
        if description is not None:
            group.description = description

        db.commit()
        db.refresh(group)

        logger.info(f"Updated resource group {group_id}")
        return group

    @staticmethod
    def delete_group(db: Session, group_id: int) -> None:
        """
        Delete a resource group.

        Its resources are kept and detached; group introductions and group
        introducer grants are deleted.
        """
        group = ResourceService.get_group(db, group_id)
        for resource in list(group.resources):
            resource.group = None
        db.delete(group)
        db.commit()
        logger.info(f"Deleted resource group {group_id}")
