"""
Bearer token handling for makerspace members.

Tokens are HS256 JWTs carrying the member's id, email and display name. The
manage-resources flag is included for clients, but authorization always
re-reads it from the database (see auth.dependencies.get_current_user).
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import BaseModel

from core.config import JWT_SECRET_KEY, JWT_ACCESS_TOKEN_EXPIRE_MINUTES
from models import User

logger = logging.getLogger(__name__)


class TokenPayload(BaseModel):
    """Claims of a member access token."""
    sub: str  # Member id as string
    user_id: int
    email: str
    name: str
    can_manage_resources: bool = False
    iat: Optional[int] = None
    exp: Optional[int] = None

    @classmethod
    def for_user(cls, user: User) -> "TokenPayload":
        """Claims for a persisted member."""
        return cls(
            sub=str(user.id),
            user_id=user.id,
            email=user.email,
            name=user.name,
            can_manage_resources=user.can_manage_resources
        )


class JWTService:
    """Issues and checks member access tokens."""

    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = JWT_ACCESS_TOKEN_EXPIRE_MINUTES

    @classmethod
    def create_access_token(cls, payload: TokenPayload, expires_in: Optional[timedelta] = None) -> str:
        """
        Sign an access token.

        Args:
            payload: Member claims; iat/exp are filled in here
            expires_in: Lifetime, defaults to JWT_ACCESS_TOKEN_EXPIRE_MINUTES
        """
        issued_at = datetime.now(timezone.utc)
        lifetime = expires_in or timedelta(minutes=cls.ACCESS_TOKEN_EXPIRE_MINUTES)
        claims = payload.model_dump(exclude={"iat", "exp"})
        claims["iat"] = issued_at
        claims["exp"] = issued_at + lifetime
        return jwt.encode(claims, JWT_SECRET_KEY, algorithm=cls.ALGORITHM)

    @classmethod
    def create_token_for_user(cls, user: User) -> str:
        return cls.create_access_token(TokenPayload.for_user(user))

    @classmethod
    def verify_token(cls, token: str) -> Optional[TokenPayload]:
        """Decode a token; None when it is expired, forged or malformed."""
        try:
            claims = jwt.decode(token, JWT_SECRET_KEY, algorithms=[cls.ALGORITHM])
        except jwt.ExpiredSignatureError:
            logger.debug("Rejected expired access token")
            return None
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected invalid access token: {e}")
            return None
        return TokenPayload(**claims)


jwt_service = JWTService()
