"""
ResourceIntroduction model.

An introduction records that a tutor certified a receiver on either a single
resource (resource_id set) or a whole resource group (group_id set).

Only one introduction may exist per (scope, receiver); this is checked by the
introduction service before insert rather than by a database constraint.
Revocation is never stored on this row: it is derived from the append-only
IntroductionHistoryItem log.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import ForeignKey, TIMESTAMP, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class ResourceIntroduction(Base):
    """Completed introduction of a user to a resource or resource group."""

    __tablename__ = "resource_introductions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    resource_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("resources.id", ondelete="CASCADE"), nullable=True, index=True
    )
    group_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("resource_groups.id", ondelete="CASCADE"), nullable=True, index=True
    )

    receiver_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    tutor_user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    resource = relationship("Resource", back_populates="introductions")
    group = relationship("ResourceGroup", back_populates="introductions")
    receiver = relationship("User", foreign_keys=[receiver_user_id])
    tutor = relationship("User", foreign_keys=[tutor_user_id])
    history = relationship(
        "IntroductionHistoryItem",
        back_populates="introduction",
        cascade="all, delete-orphan",
        order_by="IntroductionHistoryItem.created_at"
    )

    __table_args__ = (
        CheckConstraint(
            '(resource_id IS NULL) <> (group_id IS NULL)',
            name='ck_resource_introduction_single_scope'
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ResourceIntroduction(id={self.id}, resource_id={self.resource_id}, "
            f"group_id={self.group_id}, receiver_user_id={self.receiver_user_id})>"
        )
