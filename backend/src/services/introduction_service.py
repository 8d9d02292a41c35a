"""
Introduction service for resource and group certifications.

This service handles:
- Creating introductions (a tutor certifies a receiver on a resource or group)
- Validity checks used to gate usage sessions
- Revoke/unrevoke via the append-only introduction history
- Listing introductions per resource, group and user
"""

import logging
from typing import Iterable, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from core.constants import DEFAULT_PAGE, DEFAULT_PAGE_SIZE
from models import (
    Resource,
    ResourceGroup,
    ResourceIntroduction,
    IntroductionHistoryItem,
    IntroductionAction,
    User,
)
from services.access_policy import Capability, has_capability
from utils.datetime_utils import ensure_utc, utc_now
from utils.query_helpers import paginate

logger = logging.getLogger(__name__)


def latest_action(history: Iterable[IntroductionHistoryItem]) -> Optional[str]:
    """
    Return the action of the most recent history item.

    Items are ordered by created_at; items sharing a timestamp are ordered by id.

    Args:
        history: Revoke/unrevoke items of a single introduction, in any order

    Returns:
        IntroductionAction.REVOKE, IntroductionAction.UNREVOKE, or None when
        there is no history
    """
    latest: Optional[IntroductionHistoryItem] = None
    for item in history:
        if latest is None:
            latest = item
            continue
        item_key = (ensure_utc(item.created_at), item.id or 0)
        latest_key = (ensure_utc(latest.created_at), latest.id or 0)
        if item_key > latest_key:  # type: ignore[operator]
            latest = item
    return latest.action if latest is not None else None


class IntroductionService:
    """Service for resource- and group-scope introductions."""

    # ===== Permission checks =====

    @staticmethod
    def can_give_introductions(db: Session, resource_id: int, user_id: int) -> bool:
        """Check if the user is a resource introducer or holds the manage permission."""
        return has_capability(db, user_id, Capability.resource_introducer(resource_id))

    @staticmethod
    def can_give_group_introductions(db: Session, group_id: int, user_id: int) -> bool:
        """Check if the user is a group introducer or holds the manage permission."""
        return has_capability(db, user_id, Capability.group_introducer(group_id))

    @staticmethod
    def can_manage_introduction(db: Session, introduction: ResourceIntroduction, user_id: int) -> bool:
        """Check if the user may revoke, unrevoke or delete the given introduction."""
        if introduction.group_id is not None:
            return IntroductionService.can_give_group_introductions(db, introduction.group_id, user_id)
        return IntroductionService.can_give_introductions(db, introduction.resource_id, user_id)  # type: ignore[arg-type]

    # ===== Validity checks =====

    @staticmethod
    def is_valid(introduction: Optional[ResourceIntroduction]) -> bool:
        """An introduction is valid when it is completed and its latest history action is not REVOKE."""
        if introduction is None or introduction.completed_at is None:
            return False
        return latest_action(introduction.history) != IntroductionAction.REVOKE

    @staticmethod
    def find_resource_introduction(db: Session, resource_id: int, user_id: int) -> Optional[ResourceIntroduction]:
        """Find the receiver's introduction for a resource, if any."""
        return db.query(ResourceIntroduction).filter(
            ResourceIntroduction.resource_id == resource_id,
            ResourceIntroduction.receiver_user_id == user_id
        ).first()

    @staticmethod
    def find_group_introduction(db: Session, group_id: int, user_id: int) -> Optional[ResourceIntroduction]:
        """Find the receiver's introduction for a group, if any."""
        return db.query(ResourceIntroduction).filter(
            ResourceIntroduction.group_id == group_id,
            ResourceIntroduction.receiver_user_id == user_id
        ).first()

    @staticmethod
    def has_valid_introduction(db: Session, resource_id: int, user_id: int) -> bool:
        """Check if the user holds a completed, non-revoked introduction for the resource."""
        introduction = IntroductionService.find_resource_introduction(db, resource_id, user_id)
        return IntroductionService.is_valid(introduction)

    @staticmethod
    def has_valid_group_introduction(db: Session, group_id: int, user_id: int) -> bool:
        """Check if the user holds a completed, non-revoked introduction for the group."""
        introduction = IntroductionService.find_group_introduction(db, group_id, user_id)
        return IntroductionService.is_valid(introduction)

    # ===== Creation =====

    @staticmethod
    def create_introduction(
        db: Session,
        resource_id: int,
        tutor_user_id: int,
        receiver_user_id: int
    ) -> ResourceIntroduction:
        """
        Record that tutor_user_id introduced receiver_user_id to a resource.

        Args:
            db: Database session
            resource_id: Resource ID
            tutor_user_id: User giving the introduction
            receiver_user_id: User receiving the introduction

        Returns:
            Created ResourceIntroduction

        Raises:
            HTTPException: 404 if resource or receiver not found,
                403 if tutor cannot give introductions,
                400 if the receiver already has an introduction
        """
        resource = db.get(Resource, resource_id)
        if not resource:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Resource {resource_id} not found"
            )

        if not IntroductionService.can_give_introductions(db, resource_id, tutor_user_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not allowed to give introductions for this resource"
            )

        IntroductionService._ensure_user_exists(db, receiver_user_id)

        if IntroductionService.find_resource_introduction(db, resource_id, receiver_user_id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="The user has already completed the introduction for this resource"
            )

        introduction = ResourceIntroduction(
            resource_id=resource_id,
            receiver_user_id=receiver_user_id,
            tutor_user_id=tutor_user_id,
            completed_at=utc_now()
        )
        db.add(introduction)
        db.commit()
        db.refresh(introduction)

        logger.info(
            f"User {tutor_user_id} introduced user {receiver_user_id} to resource {resource_id}"
        )
        return introduction

    @staticmethod
    def create_group_introduction(
        db: Session,
        group_id: int,
        tutor_user_id: int,
        receiver_user_id: int
    ) -> ResourceIntroduction:
        """
        Record that tutor_user_id introduced receiver_user_id to a resource group.

        Raises:
            HTTPException: 404 if group or receiver not found,
                403 if tutor cannot give group introductions,
                400 if the receiver already has an introduction for the group
        """
        group = db.get(ResourceGroup, group_id)
        if not group:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Resource group {group_id} not found"
            )

        if not IntroductionService.can_give_group_introductions(db, group_id, tutor_user_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not allowed to give introductions for this resource group"
            )

        IntroductionService._ensure_user_exists(db, receiver_user_id)

        if IntroductionService.find_group_introduction(db, group_id, receiver_user_id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="The user has already completed the introduction for this resource group"
            )

        introduction = ResourceIntroduction(
            group_id=group_id,
            receiver_user_id=receiver_user_id,
            tutor_user_id=tutor_user_id,
            completed_at=utc_now()
        )
        db.add(introduction)
        db.commit()
        db.refresh(introduction)

        logger.info(
            f"User {tutor_user_id} introduced user {receiver_user_id} to group {group_id}"
        )
        return introduction

    # ===== Lookup and listing =====

    @staticmethod
    def get_introduction(db: Session, introduction_id: int) -> ResourceIntroduction:
        """Get an introduction by ID or raise 404."""
        introduction = db.get(ResourceIntroduction, introduction_id)
        if not introduction:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Introduction {introduction_id} not found"
            )
        return introduction

    @staticmethod
    def get_resource_introduction(db: Session, resource_id: int, introduction_id: int) -> ResourceIntroduction:
        """Get an introduction that belongs to the given resource or raise 404."""
        introduction = IntroductionService.get_introduction(db, introduction_id)
        if introduction.resource_id != resource_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Introduction {introduction_id} not found for resource {resource_id}"
            )
        return introduction

    @staticmethod
    def get_group_introduction(db: Session, group_id: int, introduction_id: int) -> ResourceIntroduction:
        """Get an introduction that belongs to the given group or raise 404."""
        introduction = IntroductionService.get_introduction(db, introduction_id)
        if introduction.group_id != group_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Introduction {introduction_id} not found for group {group_id}"
            )
        return introduction

    @staticmethod
    def list_for_resource(
        db: Session,
        resource_id: int,
        page: int = DEFAULT_PAGE,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> Tuple[List[ResourceIntroduction], int]:
        """List a resource's introductions, most recently completed first."""
        query = db.query(ResourceIntroduction).filter(
            ResourceIntroduction.resource_id == resource_id
        ).order_by(ResourceIntroduction.completed_at.desc(), ResourceIntroduction.id.desc())
        return paginate(query, page, limit)

    @staticmethod
    def list_for_group(
        db: Session,
        group_id: int,
        page: int = DEFAULT_PAGE,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> Tuple[List[ResourceIntroduction], int]:
        """List a group's introductions, most recently completed first."""
        query = db.query(ResourceIntroduction).filter(
            ResourceIntroduction.group_id == group_id
        ).order_by(ResourceIntroduction.completed_at.desc(), ResourceIntroduction.id.desc())
        return paginate(query, page, limit)

    @staticmethod
    def list_for_user(db: Session, user_id: int) -> List[ResourceIntroduction]:
        """List every introduction a user has received."""
        return db.query(ResourceIntroduction).filter(
            ResourceIntroduction.receiver_user_id == user_id
        ).order_by(ResourceIntroduction.completed_at.desc(), ResourceIntroduction.id.desc()).all()

    @staticmethod
    def delete_introduction(db: Session, introduction_id: int, performed_by_user_id: int) -> None:
        """
        Delete an introduction together with its history.

        Raises:
            HTTPException: 404 if not found, 403 if the user cannot manage it
        """
        introduction = IntroductionService.get_introduction(db, introduction_id)
        IntroductionService._ensure_can_manage(db, introduction, performed_by_user_id)

        db.delete(introduction)
        db.commit()
        logger.info(f"User {performed_by_user_id} deleted introduction {introduction_id}")

    # ===== Revocation =====

    @staticmethod
    def get_history(db: Session, introduction_id: int) -> List[IntroductionHistoryItem]:
        """Return the revoke/unrevoke history of an introduction, oldest first."""
        IntroductionService.get_introduction(db, introduction_id)
        return db.query(IntroductionHistoryItem).filter(
            IntroductionHistoryItem.introduction_id == introduction_id
        ).order_by(IntroductionHistoryItem.created_at.asc(), IntroductionHistoryItem.id.asc()).all()

    @staticmethod
    def is_revoked(db: Session, introduction_id: int) -> bool:
        """Check whether the latest history action of an introduction is REVOKE."""
        history = IntroductionService.get_history(db, introduction_id)
        return latest_action(history) == IntroductionAction.REVOKE

    @staticmethod
    def revoke_introduction(
        db: Session,
        introduction_id: int,
        performed_by_user_id: int,
        comment: Optional[str] = None
    ) -> IntroductionHistoryItem:
        """
        Revoke an introduction by appending a REVOKE history item.

        Args:
            db: Database session
            introduction_id: Introduction to revoke
            performed_by_user_id: User performing the action
            comment: Optional reason

        Returns:
            The appended history item

        Raises:
            HTTPException: 404 if not found, 403 if the user cannot manage it,
                400 if the introduction is already revoked
        """
        return IntroductionService._append_history(
            db, introduction_id, performed_by_user_id, IntroductionAction.REVOKE, comment
        )

    @staticmethod
    def unrevoke_introduction(
        db: Session,
        introduction_id: int,
        performed_by_user_id: int,
        comment: Optional[str] = None
    ) -> IntroductionHistoryItem:
        """
        Restore a revoked introduction by appending an UNREVOKE history item.

        Raises:
            HTTPException: 404 if not found, 403 if the user cannot manage it,
                400 if the introduction is not revoked
        """
        return IntroductionService._append_history(
            db, introduction_id, performed_by_user_id, IntroductionAction.UNREVOKE, comment
        )

    # ===== Helpers =====

    @staticmethod
    def _append_history(
        db: Session,
        introduction_id: int,
        performed_by_user_id: int,
        action: str,
        comment: Optional[str]
    ) -> IntroductionHistoryItem:
        introduction = IntroductionService.get_introduction(db, introduction_id)
        IntroductionService._ensure_can_manage(db, introduction, performed_by_user_id)

        revoked = latest_action(introduction.history) == IntroductionAction.REVOKE
        if action == IntroductionAction.REVOKE and revoked:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Introduction is already revoked"
            )
        if action == IntroductionAction.UNREVOKE and not revoked:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Introduction is not revoked"
            )

        item = IntroductionHistoryItem(
            introduction_id=introduction.id,
            action=action,
            performed_by_user_id=performed_by_user_id,
            comment=comment,
            created_at=utc_now()
        )
        introduction.history.append(item)
        db.commit()
        db.refresh(item)

        logger.info(f"User {performed_by_user_id} performed {action} on introduction {introduction_id}")
        return item

    @staticmethod
    def _ensure_can_manage(db: Session, introduction: ResourceIntroduction, user_id: int) -> None:
        if not IntroductionService.can_manage_introduction(db, introduction, user_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not allowed to manage this introduction"
            )

    @staticmethod
    def _ensure_user_exists(db: Session, user_id: int) -> User:
        user = db.get(User, user_id)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"User {user_id} not found"
            )
        return user
