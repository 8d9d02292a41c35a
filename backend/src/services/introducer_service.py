"""
Introducer service for managing who may give introductions.

Introducer grants exist at resource scope and at group scope. Only users with
the global manage permission may grant or remove them.
"""

import logging
from typing import List

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import Resource, ResourceGroup, ResourceIntroducer, ResourceGroupIntroducer, User
from services.access_policy import has_manage_permission

logger = logging.getLogger(__name__)


class IntroducerService:
    """Service for resource and group introducer grants."""

    @staticmethod
    def can_manage_introducers(db: Session, user_id: int) -> bool:
        """Only managers may grant or remove introducer rights."""
        return has_manage_permission(db, user_id)

    # ===== Resource introducers =====

    @staticmethod
    def list_resource_introducers(db: Session, resource_id: int) -> List[ResourceIntroducer]:
        """
        List introducers of a resource.

        Raises:
            HTTPException: 404 if resource not found
        """
        IntroducerService._get_resource(db, resource_id)
        return db.query(ResourceIntroducer).filter(
            ResourceIntroducer.resource_id == resource_id
        ).order_by(ResourceIntroducer.id).all()

    @staticmethod
    def is_resource_introducer(db: Session, resource_id: int, user_id: int) -> bool:
        """Check if the user holds a resource-level introducer grant."""
        return db.query(ResourceIntroducer).filter(
            ResourceIntroducer.resource_id == resource_id,
            ResourceIntroducer.user_id == user_id
        ).first() is not None

    @staticmethod
    def add_resource_introducer(db: Session, resource_id: int, user_id: int) -> ResourceIntroducer:
        """
        Grant a user introducer rights on a resource.

        Args:
            db: Database session
            resource_id: Resource ID
            user_id: User receiving the grant

        Returns:
            Created ResourceIntroducer

        Raises:
            HTTPException: 404 if resource or user not found, 409 if already an introducer
        """
        IntroducerService._get_resource(db, resource_id)
        IntroducerService._get_user(db, user_id)

        if IntroducerService.is_resource_introducer(db, resource_id, user_id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User is already an introducer for this resource"
            )

        introducer = ResourceIntroducer(resource_id=resource_id, user_id=user_id)
        db.add(introducer)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User is already an introducer for this resource"
            )
        db.refresh(introducer)

        logger.info(f"Granted introducer rights on resource {resource_id} to user {user_id}")
        return introducer

    @staticmethod
    def remove_resource_introducer(db: Session, resource_id: int, user_id: int) -> None:
        """
        Remove a user's introducer grant on a resource.

        Raises:
            HTTPException: 404 if the user is not an introducer for the resource
        """
        introducer = db.query(ResourceIntroducer).filter(
            ResourceIntroducer.resource_id == resource_id,
            ResourceIntroducer.user_id == user_id
        ).first()
        if not introducer:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User is not an introducer for this resource"
            )

        db.delete(introducer)
        db.commit()
        logger.info(f"Removed introducer rights on resource {resource_id} from user {user_id}")

    # ===== Group introducers =====

    @staticmethod
    def list_group_introducers(db: Session, group_id: int) -> List[ResourceGroupIntroducer]:
        """
        List introducers of a resource group.

        Raises:
            HTTPException: 404 if group not found
        """
        IntroducerService._get_group(db, group_id)
        return db.query(ResourceGroupIntroducer).filter(
            ResourceGroupIntroducer.group_id == group_id
        ).order_by(ResourceGroupIntroducer.id).all()

    @staticmethod
    def is_group_introducer(db: Session, group_id: int, user_id: int) -> bool:
        """Check if the user holds a group-level introducer grant."""
        return db.query(ResourceGroupIntroducer).filter(
            ResourceGroupIntroducer.group_id == group_id,
            ResourceGroupIntroducer.user_id == user_id
        ).first() is not None

    @staticmethod
    def add_group_introducer(db: Session, group_id: int, user_id: int) -> ResourceGroupIntroducer:
        """
        Grant a user introducer rights on every resource in a group.

        Raises:
            HTTPException: 404 if group or user not found, 409 if already an introducer
        """
        IntroducerService._get_group(db, group_id)
        IntroducerService._get_user(db, user_id)

        if IntroducerService.is_group_introducer(db, group_id, user_id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User is already an introducer for this resource group"
            )

        introducer = ResourceGroupIntroducer(group_id=group_id, user_id=user_id)
        db.add(introducer)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User is already an introducer for this resource group"
            )
        db.refresh(introducer)

        logger.info(f"Granted introducer rights on group {group_id} to user {user_id}")
        return introducer

    @staticmethod
    def remove_group_introducer(db: Session, group_id: int, user_id: int) -> None:
        """
        Remove a user's introducer grant on a group.

        Raises:
            HTTPException: 404 if the user is not an introducer for the group
        """
        introducer = db.query(ResourceGroupIntroducer).filter(
            ResourceGroupIntroducer.group_id == group_id,
            ResourceGroupIntroducer.user_id == user_id
        ).first()
        if not introducer:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User is not an introducer for this resource group"
            )

        db.delete(introducer)
        db.commit()
        logger.info(f"Removed introducer rights on group {group_id} from user {user_id}")

    # ===== Helpers =====

    @staticmethod
    def _get_resource(db: Session, resource_id: int) -> Resource:
        resource = db.get(Resource, resource_id)
        if not resource:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Resource {resource_id} not found"
            )
        return resource

    @staticmethod
    def _get_group(db: Session, group_id: int) -> ResourceGroup:
        group = db.get(ResourceGroup, group_id)
        if not group:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Resource group {group_id} not found"
            )
        return group

    @staticmethod
    def _get_user(db: Session, user_id: int) -> User:
        user = db.get(User, user_id)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"User {user_id} not found"
            )
        return user
