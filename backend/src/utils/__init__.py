"""
Utility modules for the makerspace backend.

This package contains shared utility functions and helpers used across
the application, including datetime utilities and database query helpers.
"""

from utils.query_helpers import paginate

__all__ = ['paginate']
