"""
Heartbeat-based online tracking.

Clients ping while the app is open; a member counts as online until their
last heartbeat is older than the configured TTL. State is process-local.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID

from hamro_task.core.config import settings
from hamro_task.core.models import utcnow


class PresenceRegistry:
    """Last heartbeat per (workspace, user)."""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl = timedelta(seconds=ttl_seconds or settings.presence_ttl_seconds)
        self._seen: Dict[UUID, Dict[UUID, datetime]] = {}

    def heartbeat(self, workspace_id: UUID, user_id: UUID, now: Optional[datetime] = None) -> None:
        self._seen.setdefault(workspace_id, {})[user_id] = now or utcnow()

    def leave(self, workspace_id: UUID, user_id: UUID) -> None:
        self._seen.get(workspace_id, {}).pop(user_id, None)

    def online_users(self, workspace_id: UUID, now: Optional[datetime] = None) -> List[UUID]:
        """Users with a live heartbeat; expired entries are pruned."""
        now = now or utcnow()
        seen = self._seen.get(workspace_id, {})
        expired = [user_id for user_id, at in seen.items() if now - at > self.ttl]
        for user_id in expired:
            del seen[user_id]
        return list(seen)

    def is_user_online(self, workspace_id: UUID, user_id: UUID, now: Optional[datetime] = None) -> bool:
        return user_id in self.online_users(workspace_id, now)


presence = PresenceRegistry()
