"""Authentication module using signed bearer tokens.

This module provides:
1. Token issuing and verification (JWT, HS256 by default)
2. Resolution of a token to a stored user
3. FastAPI dependencies for protecting routes
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError

from errors import UnauthenticatedError
from .db import UserStore
from .models import User, UserRole

logger = logging.getLogger(__name__)

TOKEN_EXPIRY_DAYS = 7


class AuthError(UnauthenticatedError):
    """Base exception for authentication errors."""
    pass


class InvalidTokenError(AuthError):
    """Raised when a token is malformed or its signature does not verify."""
    pass


class SessionExpiredError(AuthError):
    """Raised when a token has expired."""
    pass


class AuthManager:
    """Issues tokens and resolves them to users."""

    def __init__(self, users, secret: str, algorithm: str = "HS256"):
        """Initialize auth manager.

        Args:
            users: User store used to resolve the token subject
            secret: Signing secret
            algorithm: JWT signing algorithm
        """
        self.users = users
        self.secret = secret
        self.algorithm = algorithm

    def issue_token(self, user: User, expires_in: timedelta = timedelta(days=TOKEN_EXPIRY_DAYS)) -> str:
        """Create a signed token for a user."""
        expires_at = datetime.now(timezone.utc) + expires_in
        return jwt.encode(
            {
                'sub': str(user.id),
                'role': user.role.value,
                'exp': int(expires_at.timestamp())
            },
            self.secret,
            algorithm=self.algorithm
        )

    def decode_token(self, token: Optional[str]) -> UUID:
        """Verify a token and return the user id it was issued for.

        Raises:
            InvalidTokenError: If the token is missing, malformed or tampered with
            SessionExpiredError: If the token has expired
        """
        if not token:
            raise InvalidTokenError("Authentication required")

        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise SessionExpiredError("Session has expired")
        except JWTError as e:
            raise InvalidTokenError(f"Invalid token: {str(e)}")

        try:
            return UUID(str(payload['sub']))
        except (KeyError, ValueError):
            raise InvalidTokenError("Invalid token subject")

    async def authenticate(self, token: Optional[str]) -> User:
        """Resolve a bearer token to an existing user.

        Raises:
            AuthError: If the token is invalid or the user no longer exists
        """
        user_id = self.decode_token(token)
        user = await self.users.get_user(user_id)
        if not user:
            logger.warning(f"Token presented for unknown user {user_id}")
            raise AuthError("User not found")
        return user


# FastAPI security scheme
auth_scheme = HTTPBearer(
    auto_error=False,
    description="JWT Bearer token required"
)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)
) -> User:
    """FastAPI dependency for getting the authenticated user.

    Raises:
        HTTPException: 401 if authentication fails
    """
    manager: AuthManager = request.app.state.services.auth
    try:
        return await manager.authenticate(credentials.credentials if credentials else None)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"}
        )


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """FastAPI dependency restricting a route to administrators."""
    if user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required"
        )
    return user


__all__ = [
    'AuthManager',
    'UserStore',
    'User',
    'UserRole',
    'get_current_user',
    'require_admin',
    'AuthError',
    'InvalidTokenError',
    'SessionExpiredError'
]
