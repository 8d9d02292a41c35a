# pyright: reportMissingTypeStubs=false
"""
Member authentication for the makerspace API.

Routes depend on get_current_user for any signed-in member and on
require_resource_manager for configuration endpoints. Scoped introducer
checks live in auth.permissions.
"""

import logging
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from core.database import get_db
from services.jwt_service import jwt_service, TokenPayload
from models import User

logger = logging.getLogger(__name__)


class UserContext:
    """The signed-in member, as seen by route handlers."""

    def __init__(
        self,
        user_id: int,
        email: str,
        name: str,
        can_manage_resources: bool = False
    ):
        self.user_id = user_id
        self.email = email
        self.name = name
        self.can_manage_resources = can_manage_resources

    @classmethod
    def from_user(cls, user: User) -> "UserContext":
        return cls(
            user_id=user.id,
            email=user.email,
            name=user.name,
            can_manage_resources=user.can_manage_resources
        )

    def is_resource_manager(self) -> bool:
        """Global manage-resources permission."""
        return self.can_manage_resources

    def __repr__(self) -> str:
        return f"UserContext(user_id={self.user_id}, manager={self.can_manage_resources})"


bearer_scheme = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Optional[TokenPayload]:
    """Claims of the bearer token, or None when absent or invalid."""
    if credentials is None:
        return None
    return jwt_service.verify_token(credentials.credentials)


def get_current_user(
    payload: Optional[TokenPayload] = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> UserContext:
    """
    Resolve the bearer token to a member.

    The manage permission comes from the users table rather than the token,
    so granting or withdrawing it applies to tokens already issued.

    Raises:
        HTTPException: 401 without a valid token or when the member no longer exists
    """
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials not provided"
        )

    user = db.get(User, payload.user_id)
    if user is None:
        logger.info(f"Token for unknown member {payload.user_id} rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    return UserContext.from_user(user)


def require_resource_manager(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require the global manage-resources permission."""
    if not user.is_resource_manager():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Resource management permission required"
        )
    return user
