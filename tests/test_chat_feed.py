"""
Tests for the client-side message list and chat session.
"""
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from hamro_task.core.exceptions import ExternalServiceException
from hamro_task.core.realtime import ChangeEvent, ChangeType
from hamro_task.modules.chat.feed import (
    ChatMessage,
    ChatSession,
    DeliveryState,
    MessageList,
    TEMP_PREFIX,
)

BASE = datetime(2026, 3, 11, 4, 15, tzinfo=UTC)
ME = str(uuid4())
OTHER = str(uuid4())


def record(minutes=0, content="hello", sender=OTHER, **kwargs):
    row = {
        "id": kwargs.pop("id", str(uuid4())),
        "sender_id": sender,
        "content": content,
        "created_at": (BASE + timedelta(minutes=minutes)).isoformat(),
        "reply_to_id": None,
        "is_edited": False,
        "edited_at": None,
    }
    row.update(kwargs)
    return row


def message(minutes=0, **kwargs):
    return ChatMessage.from_record(record(minutes, **kwargs))


class FakeStore:
    """In-memory MessageStore with a switch to make writes fail."""

    def __init__(self, pages=None):
        self.pages = list(pages or [])
        self.fail_writes = False
        self.inserted = []
        self.fetches = []

    async def fetch_page(self, before=None):
        self.fetches.append(before)
        if not self.pages:
            return [], False
        return self.pages.pop(0)

    async def insert(self, content, reply_to_id=None):
        if self.fail_writes:
            raise ExternalServiceException("hamro-task", "insert failed")
        row = record(60, content=content, sender=ME, reply_to_id=reply_to_id)
        self.inserted.append(row)
        return row

    async def update(self, message_id, content):
        if self.fail_writes:
            raise ExternalServiceException("hamro-task", "update failed")
        return record(
            0,
            id=message_id,
            sender=ME,
            content=content,
            is_edited=True,
            edited_at=(BASE + timedelta(hours=2)).isoformat(),
        )

    async def delete(self, message_id):
        if self.fail_writes:
            raise ExternalServiceException("hamro-task", "delete failed")


class TestChatMessage:
    def test_from_record_parses_iso_times(self):
        msg = message(5, edited_at="2026-03-11T05:00:00+00:00", is_edited=True)

        assert msg.created_at == BASE + timedelta(minutes=5)
        assert msg.edited_at == datetime(2026, 3, 11, 5, 0, tzinfo=UTC)
        assert msg.is_edited is True
        assert msg.state == DeliveryState.CONFIRMED

    def test_naive_times_are_treated_as_utc(self):
        msg = ChatMessage.from_record(record(created_at="2026-03-11T04:15:00"))

        assert msg.created_at == BASE

    def test_temporary_ids(self):
        assert message(id=f"{TEMP_PREFIX}abc").is_temporary
        assert not message().is_temporary


class TestMessageList:
    def test_keeps_ascending_created_order(self):
        messages = MessageList()
        late, early, middle = message(10), message(0), message(5)

        for msg in (late, early, middle):
            messages.upsert(msg)

        assert messages.ids == [early.id, middle.id, late.id]

    def test_upsert_replaces_by_id(self):
        messages = MessageList()
        msg = message(0, content="first")

        assert messages.upsert(msg) is True
        assert messages.upsert(ChatMessage.from_record(record(0, id=msg.id, content="second"))) is False

        assert len(messages) == 1
        assert messages.get(msg.id).content == "second"

    def test_replace_all_keeps_pending_sends(self):
        messages = MessageList()
        messages.add_pending(message(30, id=f"{TEMP_PREFIX}1"))
        messages.upsert(message(-10))

        page = [message(2), message(1)]
        messages.replace_all(page)

        assert messages.ids == [page[1].id, page[0].id, f"{TEMP_PREFIX}1"]

    def test_prepend_older_skips_duplicates(self):
        messages = MessageList()
        held = message(10)
        messages.upsert(held)

        added = messages.prepend_older([held, message(5), message(1)])

        assert added == 2
        assert len(messages) == 3
        assert messages.ids[-1] == held.id

    def test_oldest_ignores_pending(self):
        messages = MessageList()
        messages.add_pending(message(-5, id=f"{TEMP_PREFIX}x"))
        confirmed = message(0)
        messages.upsert(confirmed)

        assert messages.oldest == confirmed

    def test_confirm_swaps_temp_for_stored_row(self):
        messages = MessageList()
        temp_id = f"{TEMP_PREFIX}1"
        messages.add_pending(message(0, id=temp_id, sender=ME))
        stored = message(1, sender=ME)

        messages.confirm(temp_id, stored)

        assert temp_id not in messages
        assert messages.get(stored.id).state == DeliveryState.CONFIRMED

    def test_confirm_keeps_later_edit_from_realtime(self):
        messages = MessageList()
        temp_id = f"{TEMP_PREFIX}1"
        stored = message(1, sender=ME, content="original")
        messages.add_pending(message(0, id=temp_id, sender=ME))
        # The realtime copy already carries an edit
        messages.upsert(ChatMessage.from_record(record(
            1,
            id=stored.id,
            sender=ME,
            content="edited",
            is_edited=True,
            edited_at=(BASE + timedelta(hours=1)).isoformat(),
        )))

        messages.confirm(temp_id, stored)

        assert len(messages) == 1
        assert messages.get(stored.id).content == "edited"


class TestRealtimeMerge:
    def test_insert_adds_unknown_message(self):
        messages = MessageList()
        row = record(3)

        messages.apply(ChangeEvent(table="messages", type=ChangeType.INSERT, new=row))

        assert row["id"] in messages

    def test_insert_of_held_message_is_ignored(self):
        messages = MessageList()
        row = record(3, content="mine")
        messages.upsert(ChatMessage.from_record(row))

        messages.apply(ChangeEvent(
            table="messages", type=ChangeType.INSERT, new=dict(row, content="other"),
        ))

        assert messages.get(row["id"]).content == "mine"

    def test_delete_removes_message(self):
        messages = MessageList()
        row = record(3)
        messages.upsert(ChatMessage.from_record(row))

        messages.apply(ChangeEvent(table="messages", type=ChangeType.DELETE, old={"id": row["id"]}))

        assert len(messages) == 0

    def test_newer_edit_wins(self):
        messages = MessageList()
        row = record(0, content="v1", is_edited=True, edited_at=(BASE + timedelta(minutes=1)).isoformat())
        messages.upsert(ChatMessage.from_record(row))

        messages.apply(ChangeEvent(
            table="messages",
            type=ChangeType.UPDATE,
            new=dict(row, content="v2", edited_at=(BASE + timedelta(minutes=2)).isoformat()),
        ))

        assert messages.get(row["id"]).content == "v2"

    def test_stale_edit_is_ignored(self):
        messages = MessageList()
        row = record(0, content="v2", is_edited=True, edited_at=(BASE + timedelta(minutes=2)).isoformat())
        messages.upsert(ChatMessage.from_record(row))

        changed = messages.apply_update(ChatMessage.from_record(
            dict(row, content="v1", edited_at=(BASE + timedelta(minutes=1)).isoformat())
        ))

        assert changed is False
        assert messages.get(row["id"]).content == "v2"

    def test_update_for_unknown_message_is_ignored(self):
        messages = MessageList()

        messages.apply(ChangeEvent(table="messages", type=ChangeType.UPDATE, new=record(0)))

        assert len(messages) == 0


class TestChatSession:
    async def test_load_takes_newest_first_page(self):
        newer, older = record(5), record(1)
        store = FakeStore(pages=[([newer, older], True)])
        session = ChatSession(store, ME)

        await session.load()

        assert session.messages.ids == [older["id"], newer["id"]]
        assert session.has_more is True

    async def test_load_more_pages_before_oldest(self):
        newer, older, oldest = record(5), record(1), record(-20)
        store = FakeStore(pages=[([newer, older], True), ([oldest], False)])
        session = ChatSession(store, ME)
        await session.load()

        added = await session.load_more()

        assert added == 1
        assert store.fetches[-1] == BASE + timedelta(minutes=1)
        assert session.has_more is False
        assert session.messages.ids[0] == oldest["id"]

    async def test_load_more_stops_when_exhausted(self):
        store = FakeStore(pages=[([record(0)], False)])
        session = ChatSession(store, ME)
        await session.load()

        assert await session.load_more() == 0
        assert len(store.fetches) == 1

    async def test_successful_send_replaces_optimistic_copy(self):
        store = FakeStore()
        session = ChatSession(store, ME)

        sent = await session.send("  namaste  ")

        assert sent is True
        assert [m.id for m in session.messages] == [store.inserted[0]["id"]]
        assert session.messages.get(store.inserted[0]["id"]).content == "namaste"
        assert session.is_sending is False

    async def test_failed_send_leaves_no_trace(self):
        store = FakeStore()
        store.fail_writes = True
        session = ChatSession(store, ME)
        session.messages.upsert(message(0))

        sent = await session.send("will not arrive")

        assert sent is False
        assert len(session.messages) == 1
        assert not any(m.is_temporary for m in session.messages)
        assert not any(m.content == "will not arrive" for m in session.messages)
        assert session.is_sending is False

    async def test_blank_message_is_not_sent(self):
        store = FakeStore()
        session = ChatSession(store, ME)

        assert await session.send("   ") is False
        assert store.inserted == []
        assert len(session.messages) == 0

    async def test_realtime_echo_of_own_send_is_not_duplicated(self):
        store = FakeStore()
        session = ChatSession(store, ME)
        await session.send("hi")

        session.apply(ChangeEvent(table="messages", type=ChangeType.INSERT, new=store.inserted[0]))

        assert len(session.messages) == 1

    async def test_edit_applies_stored_row(self):
        store = FakeStore()
        session = ChatSession(store, ME)
        row = record(0, sender=ME, content="typo")
        session.messages.upsert(ChatMessage.from_record(row))

        assert await session.edit(row["id"], "fixed") is True

        held = session.messages.get(row["id"])
        assert held.content == "fixed"
        assert held.is_edited is True

    async def test_failed_edit_keeps_content(self):
        store = FakeStore()
        store.fail_writes = True
        session = ChatSession(store, ME)
        row = record(0, sender=ME, content="typo")
        session.messages.upsert(ChatMessage.from_record(row))

        assert await session.edit(row["id"], "fixed") is False
        assert session.messages.get(row["id"]).content == "typo"

    @pytest.mark.parametrize("fail", [False, True])
    async def test_delete(self, fail):
        store = FakeStore()
        store.fail_writes = fail
        session = ChatSession(store, ME)
        row = record(0, sender=ME)
        session.messages.upsert(ChatMessage.from_record(row))

        assert await session.delete(row["id"]) is not fail
        assert (row["id"] in session.messages) is fail
