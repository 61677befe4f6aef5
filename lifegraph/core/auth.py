"""Authentication dependencies for FastAPI routes."""

from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lifegraph.core.jwt import jwt_verifier
from lifegraph.schemas.auth import CurrentUser
from lifegraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> CurrentUser:
    """Get the current authenticated user from JWT token.

    Args:
        credentials: HTTP Authorization credentials (automatically injected)

    Returns:
        CurrentUser: Authenticated user information

    Raises:
        HTTPException: If token is missing, invalid, or expired
    """
    if not credentials:
        LOGGER.warning("No authorization credentials provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = await jwt_verifier.verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        LOGGER.warning(f"Invalid token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    user = CurrentUser(
        id=claims.sub,
        email=claims.email,
        role=claims.role or "user",
        app_metadata=claims.app_metadata,
        user_metadata=claims.user_metadata,
    )

    LOGGER.debug(f"Authenticated user: {user.id}")
    return user
