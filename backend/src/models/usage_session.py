"""
UsageSession model.

A usage session is one user's claim on a resource, from start_time until
end_time. A resource has at most one active session (end_time IS NULL); the
partial unique index below enforces this at the database level so concurrent
start requests cannot both succeed.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import ForeignKey, TIMESTAMP, Text, Integer, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base
from utils.datetime_utils import ensure_utc


class UsageSession(Base):
    """Usage session of a resource by a user."""

    __tablename__ = "usage_sessions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    start_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    start_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    end_time: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """NULL while the session is active."""

    end_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    estimated_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Duration the user expects to need. Extended through extend_session."""

    # Relationships
    resource = relationship("Resource", back_populates="usage_sessions")
    user = relationship("User", back_populates="usage_sessions")

    __table_args__ = (
        Index(
            'uq_usage_sessions_active_resource',
            'resource_id',
            unique=True,
            postgresql_where=text('end_time IS NULL'),
            sqlite_where=text('end_time IS NULL'),
        ),
        Index('idx_usage_sessions_resource_start', 'resource_id', 'start_time'),
    )

    @property
    def is_active(self) -> bool:
        """True while the session has not been ended."""
        return self.end_time is None

    @property
    def usage_in_minutes(self) -> int:
        """Elapsed whole minutes between start and end, or -1 while active."""
        if self.end_time is None:
            return -1
        start = ensure_utc(self.start_time)
        end = ensure_utc(self.end_time)
        return int((end - start).total_seconds() // 60)  # type: ignore[operator]

    def __repr__(self) -> str:
        return f"<UsageSession(id={self.id}, resource_id={self.resource_id}, user_id={self.user_id})>"
