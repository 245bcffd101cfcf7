"""
Bearer token handling.

Access tokens are issued by the identity provider that fronts the apps and
share its signing secret with this service. ``sub`` carries the user id and
``email`` the verified address.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from hamro_task.core.config import get_settings
from hamro_task.core.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class TokenError(Exception):
    """Raised when a bearer token cannot be trusted."""


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed access token.

    Used by local tooling and tests; production tokens come from the
    identity provider with the same claims.

    Args:
        data: Claims to encode, at least ``sub``
        expires_delta: Token lifetime, defaults to the configured minutes

    Returns:
        The encoded JWT
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode = {**data, "exp": expire, "iat": now}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT.

    Raises:
        TokenError: If the token is expired, malformed or has no subject
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except jwt.ExpiredSignatureError:
        logger.warning("Token has expired")
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token", error=str(e))
        raise TokenError("Invalid token")

    if not payload.get("sub"):
        raise TokenError("Token has no subject")
    return payload

