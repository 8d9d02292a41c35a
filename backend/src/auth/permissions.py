# pyright: reportMissingTypeStubs=false
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from auth.dependencies import UserContext, get_current_user
from core.database import get_db
from services.access_policy import Capability, has_capability


def require_resource_introducer():
    """
    Dependency that ensures user may give introductions for the resource in the path.

    Returns:
        Dependency function that can be used with FastAPI Depends()
    """
    def dependency(
        resource_id: int,
        current_user: UserContext = Depends(get_current_user),
        db: Session = Depends(get_db)
    ) -> UserContext:
        if current_user.is_resource_manager():
            return current_user

        if has_capability(db, current_user.user_id, Capability.resource_introducer(resource_id)):
            return current_user

        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: Introducer privileges required for this resource"
        )

    return dependency


def require_group_introducer():
    """
    Dependency that ensures user may give introductions for the group in the path.

    Returns:
        Dependency function that can be used with FastAPI Depends()
    """
    def dependency(
        group_id: int,
        current_user: UserContext = Depends(get_current_user),
        db: Session = Depends(get_db)
    ) -> UserContext:
        if current_user.is_resource_manager():
            return current_user

        if has_capability(db, current_user.user_id, Capability.group_introducer(group_id)):
            return current_user

        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: Introducer privileges required for this resource group"
        )

    return dependency
