"""
Profile service.

Looks up and provisions user profiles for authenticated token subjects.
"""
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.logger import get_logger
from hamro_task.core.models import utcnow

from .models import User
from .schemas import ProfileUpdate

logger = get_logger(__name__)


class AuthService:
    """Service class for profile operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    async def get_or_create_from_claims(self, claims: Dict[str, Any]) -> Optional[User]:
        """
        Resolve the profile for a verified token.

        The first request of a new identity creates its profile from the
        ``email`` and ``name`` claims. Returns None when the subject is unknown
        and the token carries no e-mail to provision from.

        Args:
            claims: Decoded token payload

        Returns:
            The profile, or None
        """
        try:
            user_id = UUID(str(claims["sub"]))
        except ValueError:
            return None
        user = await self.get_user_by_id(user_id)
        if user is not None:
            return user

        email = claims.get("email")
        if not email:
            return None

        user = User(
            id=user_id,
            email=email.strip().lower(),
            full_name=claims.get("name") or claims.get("full_name"),
            is_active=True,
        )
        self.db.add(user)
        await self.db.commit()
        logger.info("Profile provisioned", user_id=str(user_id))
        return user

    async def update_profile(self, user: User, data: ProfileUpdate) -> User:
        """
        Apply a partial profile update.

        Args:
            user: Profile to update
            data: Fields to change

        Returns:
            The updated profile
        """
        user.update_from_dict(data.dict(exclude_unset=True))
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("Profile updated", user_id=str(user.id))
        return user

    async def set_avatar(self, user: User, avatar_url: str) -> User:
        user.avatar_url = avatar_url
        await self.db.commit()
        return user

    async def touch(self, user: User) -> None:
        """Record that the user was just seen."""
        user.last_seen_at = utcnow()
        await self.db.commit()
