"""
Shared authorization policy for resource capabilities.

Every "global manage permission OR a specific introducer grant" decision in
the services goes through has_capability(), so the rule is defined once.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from models import User, ResourceIntroducer, ResourceGroupIntroducer

logger = logging.getLogger(__name__)

SCOPE_GLOBAL = "global"
SCOPE_RESOURCE = "resource"
SCOPE_GROUP = "group"


@dataclass(frozen=True)
class Capability:
    """
    Description of what a user is asking to do.

    Attributes:
        scope: SCOPE_GLOBAL (manage resources), SCOPE_RESOURCE or SCOPE_GROUP
        target_id: Resource or group id for scoped capabilities
    """

    scope: str
    target_id: Optional[int] = None

    @classmethod
    def manage(cls) -> "Capability":
        """Global permission to manage resources."""
        return cls(SCOPE_GLOBAL)

    @classmethod
    def resource_introducer(cls, resource_id: int) -> "Capability":
        """Permission to give introductions for a resource."""
        return cls(SCOPE_RESOURCE, resource_id)

    @classmethod
    def group_introducer(cls, group_id: int) -> "Capability":
        """Permission to give introductions for every resource in a group."""
        return cls(SCOPE_GROUP, group_id)


def has_manage_permission(db: Session, user_id: int) -> bool:
    """Check whether the user holds the global manage-resources permission."""
    user = db.get(User, user_id)
    return bool(user and user.can_manage_resources)


def has_capability(db: Session, user_id: int, capability: Capability) -> bool:
    """
    Decide whether a user holds a capability.

    Managers hold every capability. Otherwise scoped capabilities require the
    matching introducer grant.

    Args:
        db: Database session
        user_id: User to check
        capability: Capability being requested

    Returns:
        True if allowed
    """
    if has_manage_permission(db, user_id):
        return True

    if capability.scope == SCOPE_RESOURCE:
        return db.query(ResourceIntroducer).filter(
            ResourceIntroducer.resource_id == capability.target_id,
            ResourceIntroducer.user_id == user_id
        ).first() is not None

    if capability.scope == SCOPE_GROUP:
        return db.query(ResourceGroupIntroducer).filter(
            ResourceGroupIntroducer.group_id == capability.target_id,
            ResourceGroupIntroducer.user_id == user_id
        ).first() is not None

    return False
