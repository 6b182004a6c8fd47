"""
Identity Provider - Bearer token verification
"""

from datetime import datetime, timedelta
from typing import Optional

import jwt
from pydantic import BaseModel

from shortsfusion.config.settings import settings
from shortsfusion.services.observability import logger


class Unauthenticated(Exception):
    """Missing, malformed or expired credential"""

    pass


class Identity(BaseModel):
    user_id: str
    email: str


class IdentityProvider:
    """
    Validates HS256 JWTs issued by the auth service

    Tokens carry `userId` (or `sub`) and `email` claims.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        expires_days: Optional[int] = None,
    ):
        self.secret = secret or settings.jwt_secret
        self.algorithm = algorithm or settings.jwt_algorithm
        self.expires_days = expires_days or settings.jwt_expires_days

    def issue(self, user_id: str, email: str) -> str:
        """Issue a token (development and tests)"""
        now = datetime.utcnow()
        payload = {
            "userId": user_id,
            "email": email,
            "iat": now,
            "exp": now + timedelta(days=self.expires_days),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Identity:
        """
        Verify a bearer token

        Raises:
            Unauthenticated: If the token is invalid, expired or lacks claims
        """
        if not token:
            raise Unauthenticated("Missing bearer token")

        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise Unauthenticated("Token expired")
        except jwt.InvalidTokenError as e:
            logger.warning("token_rejected", error=str(e))
            raise Unauthenticated("Invalid token")

        user_id = payload.get("userId") or payload.get("sub")
        email = payload.get("email")
        if not user_id or not email:
            raise Unauthenticated("Token is missing identity claims")

        return Identity(user_id=str(user_id), email=email)
