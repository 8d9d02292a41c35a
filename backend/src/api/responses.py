"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
multiple API endpoints to ensure consistency and reduce duplication.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from models import IntroductionHistoryItem, ResourceIntroduction, UsageSession


class SuccessResponse(BaseModel):
    """Generic success acknowledgement."""
    success: bool = True
    message: str


class ConnectionTestResponse(BaseModel):
    """Outcome of a connection or delivery test."""
    success: bool
    message: str


class PaginationMeta(BaseModel):
    """Pagination details for list responses."""
    page: int
    limit: int
    total: int
    total_pages: int


def build_pagination(page: int, limit: int, total: int) -> PaginationMeta:
    """Pagination metadata for a page of a list of `total` items."""
    total_pages = (total + limit - 1) // limit if limit > 0 else 0
    return PaginationMeta(page=page, limit=limit, total=total, total_pages=total_pages)


class UsageSessionResponse(BaseModel):
    """Response model for a usage session."""
    id: int
    resource_id: int
    user_id: int
    start_time: datetime
    start_notes: Optional[str] = None
    end_time: Optional[datetime] = None
    end_notes: Optional[str] = None
    estimated_duration_minutes: Optional[int] = None
    usage_in_minutes: int  # -1 while the session is active

    @classmethod
    def from_model(cls, session: UsageSession) -> "UsageSessionResponse":
        return cls(
            id=session.id,
            resource_id=session.resource_id,
            user_id=session.user_id,
            start_time=session.start_time,
            start_notes=session.start_notes,
            end_time=session.end_time,
            end_notes=session.end_notes,
            estimated_duration_minutes=session.estimated_duration_minutes,
            usage_in_minutes=session.usage_in_minutes
        )


class UsageSessionListResponse(BaseModel):
    """Response model for a page of usage sessions."""
    sessions: List[UsageSessionResponse]
    pagination: PaginationMeta


class IntroductionHistoryItemResponse(BaseModel):
    """Response model for a revoke/unrevoke history entry."""
    id: int
    introduction_id: int
    action: str
    performed_by_user_id: Optional[int] = None
    comment: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_model(cls, item: IntroductionHistoryItem) -> "IntroductionHistoryItemResponse":
        return cls(
            id=item.id,
            introduction_id=item.introduction_id,
            action=item.action,
            performed_by_user_id=item.performed_by_user_id,
            comment=item.comment,
            created_at=item.created_at
        )


class IntroductionResponse(BaseModel):
    """Response model for an introduction."""
    id: int
    resource_id: Optional[int] = None
    group_id: Optional[int] = None
    receiver_user_id: int
    tutor_user_id: Optional[int] = None
    completed_at: Optional[datetime] = None
    is_revoked: bool
    created_at: datetime

    @classmethod
    def from_model(cls, introduction: ResourceIntroduction, is_revoked: bool) -> "IntroductionResponse":
        return cls(
            id=introduction.id,
            resource_id=introduction.resource_id,
            group_id=introduction.group_id,
            receiver_user_id=introduction.receiver_user_id,
            tutor_user_id=introduction.tutor_user_id,
            completed_at=introduction.completed_at,
            is_revoked=is_revoked,
            created_at=introduction.created_at
        )


class IntroductionListResponse(BaseModel):
    """Response model for a page of introductions."""
    introductions: List[IntroductionResponse]
    pagination: PaginationMeta


class IntroducerResponse(BaseModel):
    """Response model for an introducer grant."""
    id: int
    user_id: int
    resource_id: Optional[int] = None
    group_id: Optional[int] = None
    created_at: datetime
