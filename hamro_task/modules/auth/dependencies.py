"""
Authentication dependencies.

This module provides FastAPI dependencies that turn a bearer token into the
current user's profile.
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.database import get_db_session
from hamro_task.core.exceptions import AuthenticationException
from hamro_task.core.logger import get_logger
from hamro_task.core.security import TokenError, decode_token

from .models import User
from .service import AuthService

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def authenticate_token(token: str, db: AsyncSession) -> User:
    """
    Resolve a raw bearer token to an active user.

    Shared by HTTP dependencies and websocket handshakes.

    Raises:
        AuthenticationException: If the token or the user is not valid
    """
    try:
        claims = decode_token(token)
    except TokenError as e:
        logger.warning("Token rejected", error=str(e))
        raise AuthenticationException(str(e))

    user = await AuthService(db).get_or_create_from_claims(claims)
    if user is None:
        logger.warning("Unknown token subject", sub=claims.get("sub"))
        raise AuthenticationException("Could not validate credentials")
    if not user.is_active:
        logger.warning("Inactive user attempted access", user_id=str(user.id))
        raise AuthenticationException("User account is disabled")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """
    Get the current authenticated user from the Authorization header.

    Returns:
        The authenticated user

    Raises:
        AuthenticationException: If the header is missing or the token is invalid
    """
    if credentials is None:
        raise AuthenticationException()
    return await authenticate_token(credentials.credentials, db)


async def get_current_superuser(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Require a platform administrator.

    Raises:
        HTTPException: If the user is not a superuser
    """
    if not current_user.is_superuser:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions"
        )
    return current_user
