"""
IntroductionHistoryItem model.

Append-only log of revoke/unrevoke actions on an introduction. The current
revocation state is the action of the most recent item (no items means the
introduction is not revoked).
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import ForeignKey, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class IntroductionAction:
    """Actions recorded in the introduction history."""

    REVOKE = "revoke"
    UNREVOKE = "unrevoke"


class IntroductionHistoryItem(Base):
    """Revoke/unrevoke entry for an introduction."""

    __tablename__ = "introduction_history_items"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    introduction_id: Mapped[int] = mapped_column(
        ForeignKey("resource_introductions.id", ondelete="CASCADE"), index=True
    )

    action: Mapped[str] = mapped_column(String(20))
    """IntroductionAction.REVOKE or IntroductionAction.UNREVOKE."""

    performed_by_user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    introduction = relationship("ResourceIntroduction", back_populates="history")
    performed_by = relationship("User")
