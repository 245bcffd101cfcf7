"""
HTTP client for the Hamro Task API.

Example:
    >>> async with HamroTaskClient("https://api.example.com", token, workspace_id) as client:
    ...     session = ChatSession(client.channel_store(channel_id), sender_id=me)
    ...     await session.load()
    ...     await session.send("hello")
"""
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx

from hamro_task.core.exceptions import ExternalServiceException
from hamro_task.core.logger import get_logger

logger = get_logger(__name__)

API_PREFIX = "/api/v1"


class HamroTaskClient:
    """Thin async wrapper over the REST API, scoped to one workspace."""

    def __init__(
        self,
        base_url: str,
        token: str,
        workspace_id: Any,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.workspace_id = str(workspace_id)
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + API_PREFIX,
            headers={
                "Authorization": f"Bearer {token}",
                "X-Workspace-ID": self.workspace_id,
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "HamroTaskClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Send a request and decode the JSON answer.

        Raises:
            ExternalServiceException: For transport errors and error responses
        """
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.error("API request failed", method=method, path=path, error=str(e))
            raise ExternalServiceException("hamro-task", f"Network error: {e}")

        if response.is_error:
            try:
                message = response.json().get("error", {}).get("message")
            except ValueError:
                message = None
            raise ExternalServiceException(
                "hamro-task", message or f"HTTP {response.status_code} for {method} {path}"
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # Dashboard and notifications

    async def dashboard(self) -> Dict[str, Any]:
        return await self._request("GET", "/dashboard")

    async def notifications(self) -> Dict[str, Any]:
        return await self._request("GET", "/notifications")

    async def mark_notification_read(self, notification_id: Any) -> Dict[str, Any]:
        return await self._request("POST", f"/notifications/{notification_id}/read")

    # Channels

    async def list_channels(self) -> Dict[str, Any]:
        return await self._request("GET", "/channels")

    async def create_channel(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        return await self._request("POST", "/channels", json={"name": name, "description": description})

    async def fetch_channel_page(
        self, channel_id: Any, before: Optional[datetime] = None
    ) -> Tuple[List[Dict[str, Any]], bool]:
        params = {"before": before.isoformat()} if before is not None else None
        page = await self._request("GET", f"/channels/{channel_id}/messages", params=params)
        return page["messages"], page["has_more"]

    async def send_channel_message(
        self, channel_id: Any, content: str, reply_to_id: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            json={"content": content, "reply_to_id": reply_to_id},
        )

    async def edit_channel_message(self, message_id: Any, content: str) -> Dict[str, Any]:
        return await self._request("PATCH", f"/messages/{message_id}", json={"content": content})

    async def delete_channel_message(self, message_id: Any) -> None:
        await self._request("DELETE", f"/messages/{message_id}")

    def channel_store(self, channel_id: Any) -> "RemoteChannelStore":
        return RemoteChannelStore(self, channel_id)

    # Direct messages

    async def open_conversation(self, user_id: Any) -> Dict[str, Any]:
        return await self._request("POST", "/conversations", json={"user_id": str(user_id)})

    async def fetch_conversation_page(
        self, conversation_id: Any, before: Optional[datetime] = None
    ) -> Tuple[List[Dict[str, Any]], bool]:
        params = {"before": before.isoformat()} if before is not None else None
        page = await self._request("GET", f"/conversations/{conversation_id}/messages", params=params)
        return page["messages"], page["has_more"]

    async def send_direct_message(
        self, conversation_id: Any, content: str, reply_to_id: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/conversations/{conversation_id}/messages",
            json={"content": content, "reply_to_id": reply_to_id},
        )

    async def edit_direct_message(self, message_id: Any, content: str) -> Dict[str, Any]:
        return await self._request("PATCH", f"/direct-messages/{message_id}", json={"content": content})

    async def delete_direct_message(self, message_id: Any) -> None:
        await self._request("DELETE", f"/direct-messages/{message_id}")

    def conversation_store(self, conversation_id: Any) -> "RemoteConversationStore":
        return RemoteConversationStore(self, conversation_id)


class RemoteChannelStore:
    """MessageStore for one channel over HTTP."""

    def __init__(self, client: HamroTaskClient, channel_id: Any):
        self.client = client
        self.channel_id = channel_id

    async def fetch_page(self, before: Optional[datetime] = None) -> Tuple[Sequence[Mapping[str, Any]], bool]:
        return await self.client.fetch_channel_page(self.channel_id, before)

    async def insert(self, content: str, reply_to_id: Optional[str] = None) -> Mapping[str, Any]:
        return await self.client.send_channel_message(self.channel_id, content, reply_to_id)

    async def update(self, message_id: str, content: str) -> Mapping[str, Any]:
        return await self.client.edit_channel_message(message_id, content)

    async def delete(self, message_id: str) -> None:
        await self.client.delete_channel_message(message_id)


class RemoteConversationStore:
    """MessageStore for one direct conversation over HTTP."""

    def __init__(self, client: HamroTaskClient, conversation_id: Any):
        self.client = client
        self.conversation_id = conversation_id

    async def fetch_page(self, before: Optional[datetime] = None) -> Tuple[Sequence[Mapping[str, Any]], bool]:
        return await self.client.fetch_conversation_page(self.conversation_id, before)

    async def insert(self, content: str, reply_to_id: Optional[str] = None) -> Mapping[str, Any]:
        return await self.client.send_direct_message(self.conversation_id, content, reply_to_id)

    async def update(self, message_id: str, content: str) -> Mapping[str, Any]:
        return await self.client.edit_direct_message(message_id, content)

    async def delete(self, message_id: str) -> None:
        await self.client.delete_direct_message(message_id)
