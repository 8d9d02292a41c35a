"""
ResourceGroup model.

A group bundles resources so that introductions and introducer grants can be
given once for every resource in the group.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class ResourceGroup(Base):
    """Named collection of resources."""

    __tablename__ = "resource_groups"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the group."""

    name: Mapped[str] = mapped_column(String(255))
    """Display name of the group (e.g., "Laser cutters")."""

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Optional description of the group."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    resources = relationship("Resource", back_populates="group")
    """Resources in this group. Deleting the group detaches them (group_id is set to NULL)."""

    introducers = relationship(
        "ResourceGroupIntroducer",
        back_populates="group",
        cascade="all, delete-orphan"
    )
    """Users allowed to give introductions for every resource in the group."""

    introductions = relationship(
        "ResourceIntroduction",
        back_populates="group",
        cascade="all, delete-orphan"
    )
    """Group-scope introductions."""

    def __repr__(self) -> str:
        return f"<ResourceGroup(id={self.id}, name='{self.name}')>"
