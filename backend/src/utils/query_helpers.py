"""
Query helper utilities for database operations.

This module provides shared utilities for common database query patterns,
such as page/limit pagination used by the history and listing endpoints.
"""

from typing import List, Tuple, TypeVar
from sqlalchemy.orm import Query

from core.constants import DEFAULT_PAGE, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

# Type variable for Query generic type
T = TypeVar('T')


def paginate(query: Query[T], page: int = DEFAULT_PAGE, limit: int = DEFAULT_PAGE_SIZE) -> Tuple[List[T], int]:
    """
    Apply 1-based page/limit pagination to a query.

    Filters and order_by() should already be applied to the query.

    Args:
        query: SQLAlchemy query object (already filtered and ordered)
        page: 1-based page number; values below 1 are treated as 1
        limit: Page size, clamped to [1, MAX_PAGE_SIZE]

    Returns:
        Tuple of (items on the requested page, total number of matching rows)

    Example:
        ```python
        query = db.query(UsageSession).filter(
            UsageSession.resource_id == resource_id
        ).order_by(UsageSession.start_time.desc())
        sessions, total = paginate(query, page=2, limit=10)
        ```
    """
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, total
