"""
ResourceGroupIntroducer model.

A group introducer may give introductions for every resource in the group.
"""

from datetime import datetime
from sqlalchemy import ForeignKey, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class ResourceGroupIntroducer(Base):
    """Group-level introducer grant."""

    __tablename__ = "resource_group_introducers"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("resource_groups.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    group = relationship("ResourceGroup", back_populates="introducers")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint('group_id', 'user_id', name='uq_resource_group_introducer'),
    )
