"""
Usage session service.

Tracks who is using which resource. A resource is either idle or has exactly
one active session; starting a session requires an introduction (or an
introducer grant, or the manage permission) and emits usage.started, ending
it emits usage.ended.
"""

import logging
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.constants import ALLOWED_SESSION_EXTENSION_MINUTES, DEFAULT_PAGE, DEFAULT_PAGE_SIZE
from models import Resource, UsageSession
from services.access_policy import Capability, has_capability, has_manage_permission
from services.event_bus import EventBus, UsageEvent, USAGE_STARTED, USAGE_ENDED
from services.introduction_service import IntroductionService
from utils.datetime_utils import utc_now
from utils.query_helpers import paginate

logger = logging.getLogger(__name__)

RESOURCE_IN_USE_DETAIL = "Resource is currently in use by another user"


class UsageService:
    """Service for starting, ending and querying usage sessions."""

    @staticmethod
    def can_use_resource(db: Session, resource: Resource, user_id: int) -> bool:
        """
        Check whether a user may start a session on a resource.

        Allowed for, in order: managers, holders of a valid resource
        introduction, resource introducers, and when the resource is grouped,
        holders of a valid group introduction and group introducers.
        """
        if has_manage_permission(db, user_id):
            return True

        if IntroductionService.has_valid_introduction(db, resource.id, user_id):
            return True

        if has_capability(db, user_id, Capability.resource_introducer(resource.id)):
            return True

        if resource.group_id is not None:
            if IntroductionService.has_valid_group_introduction(db, resource.group_id, user_id):
                return True
            if has_capability(db, user_id, Capability.group_introducer(resource.group_id)):
                return True

        return False

    @staticmethod
    def get_active_session(db: Session, resource_id: int) -> Optional[UsageSession]:
        """Return the active session of a resource, or None when the resource is idle."""
        return db.query(UsageSession).filter(
            UsageSession.resource_id == resource_id,
            UsageSession.end_time.is_(None)
        ).first()

    @staticmethod
    def start_session(
        db: Session,
        event_bus: EventBus,
        resource_id: int,
        user_id: int,
        notes: Optional[str] = None,
        force_take_over: bool = False,
        estimated_duration_minutes: Optional[int] = None
    ) -> UsageSession:
        """
        Start a usage session on a resource.

        Args:
            db: Database session
            event_bus: Bus that receives the usage.started event
            resource_id: Resource ID
            user_id: User starting the session
            notes: Optional start notes
            force_take_over: Accepted for API compatibility; an active session
                is never taken over
            estimated_duration_minutes: Expected duration of the session

        Returns:
            The created UsageSession

        Raises:
            HTTPException: 404 if resource not found,
                400 if the user lacks an introduction, the duration estimate is
                missing or too long, or the resource is already in use
        """
        resource = db.get(Resource, resource_id)
        if not resource:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Resource {resource_id} not found"
            )

        if not UsageService.can_use_resource(db, resource, user_id):
            if resource.group_id is not None:
                detail = "You must complete the introduction for the resource or its group before using it"
            else:
                detail = "You must complete the introduction before using this resource"
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

        UsageService._validate_estimate(resource, estimated_duration_minutes)

        if force_take_over:
            logger.debug(f"force_take_over requested by user {user_id} on resource {resource_id}; ignored")

        if UsageService.get_active_session(db, resource_id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=RESOURCE_IN_USE_DETAIL
            )

        session = UsageSession(
            resource_id=resource_id,
            user_id=user_id,
            start_time=utc_now(),
            start_notes=notes,
            estimated_duration_minutes=estimated_duration_minutes
        )
        db.add(session)
        try:
            db.commit()
        except IntegrityError:
            # Another request inserted an active session between our check and insert
            db.rollback()
            logger.warning(f"Concurrent session start rejected for resource {resource_id} (user {user_id})")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=RESOURCE_IN_USE_DETAIL
            )
        db.refresh(session)

        logger.info(f"User {user_id} started session {session.id} on resource {resource_id}")
        event_bus.emit(
            USAGE_STARTED,
            UsageEvent(
                event_type=USAGE_STARTED,
                resource_id=resource_id,
                user_id=user_id,
                start_time=session.start_time
            )
        )
        return session

    @staticmethod
    def end_session(
        db: Session,
        event_bus: EventBus,
        resource_id: int,
        user_id: int,
        notes: Optional[str] = None
    ) -> UsageSession:
        """
        End the active session on a resource.

        Args:
            db: Database session
            event_bus: Bus that receives the usage.ended event
            resource_id: Resource ID
            user_id: User ending the session (owner or manager)
            notes: Optional end notes

        Returns:
            The ended UsageSession

        Raises:
            HTTPException: 400 if there is no active session,
                403 if the user is neither the owner nor a manager
        """
        session = UsageService.get_active_session(db, resource_id)
        if not session:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No active session found for this resource"
            )

        if session.user_id != user_id and not has_manage_permission(db, user_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only end your own session"
            )

        session.end_time = utc_now()
        session.end_notes = notes
        db.commit()
        db.refresh(session)

        logger.info(
            f"User {user_id} ended session {session.id} on resource {resource_id} "
            f"({session.usage_in_minutes} min)"
        )
        event_bus.emit(
            USAGE_ENDED,
            UsageEvent(
                event_type=USAGE_ENDED,
                resource_id=resource_id,
                user_id=session.user_id,
                start_time=session.start_time,
                end_time=session.end_time
            )
        )
        return session

    @staticmethod
    def extend_session(db: Session, resource_id: int, user_id: int, additional_minutes: int) -> UsageSession:
        """
        Extend the estimated duration of the active session.

        Args:
            db: Database session
            resource_id: Resource ID
            user_id: User requesting the extension (owner or manager)
            additional_minutes: One of ALLOWED_SESSION_EXTENSION_MINUTES

        Returns:
            The updated UsageSession

        Raises:
            HTTPException: 400 for a disallowed extension or no active session,
                403 if the user is neither the owner nor a manager
        """
        if additional_minutes not in ALLOWED_SESSION_EXTENSION_MINUTES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"additional_minutes must be one of {ALLOWED_SESSION_EXTENSION_MINUTES}"
            )

        session = UsageService.get_active_session(db, resource_id)
        if not session:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No active session found for this resource"
            )

        if session.user_id != user_id and not has_manage_permission(db, user_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only extend your own session"
            )

        session.estimated_duration_minutes = (session.estimated_duration_minutes or 0) + additional_minutes
        db.commit()
        db.refresh(session)

        logger.info(f"Session {session.id} extended by {additional_minutes} min")
        return session

    @staticmethod
    def get_resource_usage_history(
        db: Session,
        resource_id: int,
        page: int = DEFAULT_PAGE,
        limit: int = DEFAULT_PAGE_SIZE,
        user_id: Optional[int] = None
    ) -> Tuple[List[UsageSession], int]:
        """
        Get usage sessions of a resource, newest first.

        Args:
            db: Database session
            resource_id: Resource ID
            page: 1-based page number
            limit: Page size
            user_id: Restrict to sessions of this user

        Returns:
            Tuple of (sessions on the page, total count)

        Raises:
            HTTPException: 404 if resource not found
        """
        if not db.get(Resource, resource_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Resource {resource_id} not found"
            )

        query = db.query(UsageSession).filter(UsageSession.resource_id == resource_id)
        if user_id is not None:
            query = query.filter(UsageSession.user_id == user_id)
        query = query.order_by(UsageSession.start_time.desc(), UsageSession.id.desc())
        return paginate(query, page, limit)

    @staticmethod
    def get_user_usage_history(
        db: Session,
        user_id: int,
        page: int = DEFAULT_PAGE,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> Tuple[List[UsageSession], int]:
        """Get a user's usage sessions across all resources, newest first."""
        query = db.query(UsageSession).filter(
            UsageSession.user_id == user_id
        ).order_by(UsageSession.start_time.desc(), UsageSession.id.desc())
        return paginate(query, page, limit)

    @staticmethod
    def _validate_estimate(resource: Resource, estimated_duration_minutes: Optional[int]) -> None:
        if estimated_duration_minutes is None:
            if resource.require_session_duration_estimation:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="An estimated session duration is required for this resource"
                )
            return

        if estimated_duration_minutes <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Estimated duration must be a positive number of minutes"
            )

        max_minutes = resource.max_session_time_minutes
        if max_minutes is not None and estimated_duration_minutes > max_minutes:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Estimated duration exceeds the maximum session time of {max_minutes} minutes"
            )
