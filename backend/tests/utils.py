"""
Request helpers for API tests.
"""

from typing import Dict

from models import User
from services.jwt_service import JWTService


def auth_headers(user: User) -> Dict[str, str]:
    """Authorization header for requests made as the given member."""
    return {"Authorization": f"Bearer {JWTService.create_token_for_user(user)}"}
