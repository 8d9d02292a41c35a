"""
ResourceIntroducer model.

An introducer grant allows a user to give introductions (certify other users)
for a single resource.
"""

from datetime import datetime
from sqlalchemy import ForeignKey, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class ResourceIntroducer(Base):
    """Resource-level introducer grant."""

    __tablename__ = "resource_introducers"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """When the grant was given."""

    # Relationships
    resource = relationship("Resource", back_populates="introducers")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint('resource_id', 'user_id', name='uq_resource_introducer'),
    )
