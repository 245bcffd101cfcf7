"""
Client-side message list with optimistic sends and realtime merge.

``ChatSession`` drives a ``MessageList`` against any ``MessageStore``: the
HTTP client in ``hamro_task.client`` or ``ChannelMessageStore`` bound to a
database session.
"""
import bisect
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple
from uuid import UUID

from hamro_task.core.logger import get_logger
from hamro_task.core.models import as_utc, utcnow
from hamro_task.core.realtime import ChangeEvent, ChangeType

from .service import MessageService

logger = get_logger(__name__)

TEMP_PREFIX = "temp-"


class DeliveryState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return as_utc(value)


def _str_id(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class ChatMessage:
    id: str
    sender_id: str
    content: str
    created_at: datetime
    reply_to_id: Optional[str] = None
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    state: DeliveryState = DeliveryState.CONFIRMED

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_PREFIX)

    @property
    def sort_key(self) -> Tuple[datetime, str]:
        return (self.created_at, self.id)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ChatMessage":
        """Build from a row dict (change feed payload or API response)."""
        return cls(
            id=str(record["id"]),
            sender_id=str(record["sender_id"]),
            content=record["content"],
            created_at=_parse_time(record["created_at"]),
            reply_to_id=_str_id(record.get("reply_to_id")),
            is_edited=bool(record.get("is_edited", False)),
            edited_at=_parse_time(record.get("edited_at")),
        )


class MessageList:
    """
    Messages of one conversation in ascending ``created_at`` order, keyed by id.

    Pending entries are optimistic sends not yet acknowledged. A failed send
    is dropped rather than kept.
    """

    def __init__(self) -> None:
        self._by_id: Dict[str, ChatMessage] = {}
        self._keys: List[Tuple[datetime, str]] = []

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[ChatMessage]:
        return (self._by_id[key[1]] for key in self._keys)

    def __contains__(self, message_id: object) -> bool:
        return str(message_id) in self._by_id

    def get(self, message_id: str) -> Optional[ChatMessage]:
        return self._by_id.get(str(message_id))

    @property
    def ids(self) -> List[str]:
        return [key[1] for key in self._keys]

    @property
    def oldest(self) -> Optional[ChatMessage]:
        """Oldest confirmed message, the cursor for loading older pages."""
        for message in self:
            if message.state == DeliveryState.CONFIRMED:
                return message
        return None

    def clear(self) -> None:
        self._by_id.clear()
        self._keys.clear()

    def upsert(self, message: ChatMessage) -> bool:
        """Insert or replace by id, keeping the order. Returns True when new."""
        existing = self._by_id.get(message.id)
        if existing is not None:
            self._keys.remove(existing.sort_key)
        bisect.insort(self._keys, message.sort_key)
        self._by_id[message.id] = message
        return existing is None

    def remove(self, message_id: str) -> Optional[ChatMessage]:
        message = self._by_id.pop(str(message_id), None)
        if message is not None:
            self._keys.remove(message.sort_key)
        return message

    def replace_all(self, newest_first: Sequence[ChatMessage]) -> None:
        """Reset to a freshly fetched page, keeping pending sends."""
        pending = [m for m in self if m.state == DeliveryState.PENDING]
        self.clear()
        for message in reversed(newest_first):
            self.upsert(message)
        for message in pending:
            self.upsert(message)

    def prepend_older(self, newest_first: Sequence[ChatMessage]) -> int:
        """Merge an older page; ids already held are skipped. Returns rows added."""
        added = 0
        for message in reversed(newest_first):
            if message.id not in self._by_id:
                self.upsert(message)
                added += 1
        return added

    def add_pending(self, message: ChatMessage) -> None:
        self.upsert(replace(message, state=DeliveryState.PENDING))

    def confirm(self, temp_id: str, persisted: ChatMessage) -> None:
        """Swap an optimistic entry for the stored row."""
        self.remove(temp_id)
        current = self._by_id.get(persisted.id)
        if current is None or not _is_newer(current, persisted):
            self.upsert(replace(persisted, state=DeliveryState.CONFIRMED))

    def fail(self, temp_id: str) -> None:
        self.remove(temp_id)

    def apply_update(self, incoming: ChatMessage) -> bool:
        """
        Take an edit unless the held copy was edited later.

        Returns True when the held message changed.
        """
        current = self._by_id.get(incoming.id)
        if current is None or _is_newer(current, incoming):
            return False
        self.upsert(replace(
            current,
            content=incoming.content,
            is_edited=incoming.is_edited,
            edited_at=incoming.edited_at,
        ))
        return True

    def apply(self, event: ChangeEvent) -> None:
        """Merge a realtime change for this conversation."""
        if event.type == ChangeType.INSERT and event.new:
            message = ChatMessage.from_record(event.new)
            if message.id not in self._by_id:
                self.upsert(message)
        elif event.type == ChangeType.UPDATE and event.new:
            self.apply_update(ChatMessage.from_record(event.new))
        elif event.type == ChangeType.DELETE and event.old:
            self.remove(str(event.old["id"]))


def _is_newer(current: ChatMessage, incoming: ChatMessage) -> bool:
    """True when ``current`` carries a later edit than ``incoming``."""
    if current.edited_at is None:
        return False
    if incoming.edited_at is None:
        return True
    return current.edited_at > incoming.edited_at


class MessageStore(Protocol):
    """Where a ChatSession reads and writes messages."""

    async def fetch_page(
        self, before: Optional[datetime] = None
    ) -> Tuple[Sequence[Mapping[str, Any]], bool]:
        ...

    async def insert(self, content: str, reply_to_id: Optional[str] = None) -> Mapping[str, Any]:
        ...

    async def update(self, message_id: str, content: str) -> Mapping[str, Any]:
        ...

    async def delete(self, message_id: str) -> None:
        ...


class ChatSession:
    """One open conversation: its message list, paging and optimistic sends."""

    def __init__(self, store: MessageStore, sender_id: Any):
        self.store = store
        self.sender_id = str(sender_id)
        self.messages = MessageList()
        self.has_more = True
        self.is_sending = False

    async def load(self) -> None:
        records, has_more = await self.store.fetch_page()
        self.messages.replace_all([ChatMessage.from_record(r) for r in records])
        self.has_more = has_more

    async def load_more(self) -> int:
        """Fetch the page before the oldest held message. Returns rows added."""
        oldest = self.messages.oldest
        if oldest is None or not self.has_more:
            return 0
        records, has_more = await self.store.fetch_page(before=oldest.created_at)
        self.has_more = has_more
        return self.messages.prepend_older([ChatMessage.from_record(r) for r in records])

    async def send(self, content: str, reply_to_id: Optional[str] = None) -> bool:
        """
        Show the message immediately, then persist it.

        The optimistic copy is replaced by the stored row on success and
        removed on failure.
        """
        content = (content or "").strip()
        if not content:
            return False

        temp_id = f"{TEMP_PREFIX}{uuid.uuid4().hex}"
        self.messages.add_pending(ChatMessage(
            id=temp_id,
            sender_id=self.sender_id,
            content=content,
            created_at=utcnow(),
            reply_to_id=reply_to_id,
        ))
        self.is_sending = True
        try:
            record = await self.store.insert(content, reply_to_id)
        except Exception as e:
            logger.warning("Message send failed", error=str(e))
            self.messages.fail(temp_id)
            return False
        finally:
            self.is_sending = False

        self.messages.confirm(temp_id, ChatMessage.from_record(record))
        return True

    async def edit(self, message_id: str, content: str) -> bool:
        content = (content or "").strip()
        if not content:
            return False
        try:
            record = await self.store.update(message_id, content)
        except Exception as e:
            logger.warning("Message edit failed", message_id=message_id, error=str(e))
            return False
        self.messages.apply_update(ChatMessage.from_record(record))
        return True

    async def delete(self, message_id: str) -> bool:
        try:
            await self.store.delete(message_id)
        except Exception as e:
            logger.warning("Message delete failed", message_id=message_id, error=str(e))
            return False
        self.messages.remove(message_id)
        return True

    def apply(self, event: ChangeEvent) -> None:
        self.messages.apply(event)


class ChannelMessageStore:
    """MessageStore over ``MessageService`` for in-process consumers."""

    def __init__(self, db, workspace_id: UUID, channel_id: UUID, sender_id: UUID):
        self.service = MessageService(db)
        self.workspace_id = workspace_id
        self.channel_id = channel_id
        self.sender_id = sender_id

    async def fetch_page(self, before: Optional[datetime] = None):
        page = await self.service.fetch_page(self.workspace_id, self.channel_id, self.sender_id, before=before)
        return [m.to_dict() for m in page.messages], page.has_more

    async def insert(self, content: str, reply_to_id: Optional[str] = None):
        message = await self.service.send(
            self.workspace_id,
            self.channel_id,
            self.sender_id,
            content,
            UUID(reply_to_id) if reply_to_id else None,
        )
        return message.to_dict()

    async def update(self, message_id: str, content: str):
        message = await self.service.edit(self.workspace_id, UUID(message_id), self.sender_id, content)
        return message.to_dict()

    async def delete(self, message_id: str) -> None:
        await self.service.delete(self.workspace_id, UUID(message_id), self.sender_id)
