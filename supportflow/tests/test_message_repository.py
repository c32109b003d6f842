"""
Unit tests for MessageRepository and the edit window rule
"""
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock

from supportflow.exceptions import NotFoundError, PersistenceError
from supportflow.models.schemas import Message, MessageCreate
from supportflow.repositories.message_repository import can_edit_message
from supportflow.tests.conftest import seed_ticket

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def message_at(created_at, user_id="user-1"):
    return Message(ticket_id="t", text="hi", user_id=user_id, created_at=created_at)


class TestCanEditMessage:
    """5 minute edit window"""

    @pytest.mark.parametrize("age, expected", [
        (timedelta(seconds=0), True),
        (timedelta(minutes=4, seconds=59), True),
        (timedelta(minutes=5), False),
        (timedelta(minutes=5, seconds=1), False),
        (timedelta(hours=1), False),
    ])
    def test_author_window(self, age, expected):
        message = message_at(NOW - age)

        assert can_edit_message(message, editor_id="user-1", editor_role="user", now=NOW) is expected

    @pytest.mark.parametrize("role", ["agent", "admin"])
    def test_privileged_roles_unrestricted(self, role):
        message = message_at(NOW - timedelta(days=3))

        assert can_edit_message(message, editor_id="someone-else", editor_role=role, now=NOW) is True

    def test_other_user_cannot_edit(self):
        message = message_at(NOW)

        assert can_edit_message(message, editor_id="user-2", editor_role="user", now=NOW) is False

    def test_pending_timestamp_is_editable(self):
        assert can_edit_message(message_at(None), editor_id="user-1", now=NOW) is True

    def test_naive_timestamp_treated_as_utc(self):
        message = message_at((NOW - timedelta(minutes=1)).replace(tzinfo=None))

        assert can_edit_message(message, now=NOW) is True

    def test_custom_window(self):
        message = message_at(NOW - timedelta(seconds=30))

        assert can_edit_message(message, now=NOW, window_seconds=10) is False

    def test_zero_window_disables_editing(self):
        assert can_edit_message(message_at(NOW), now=NOW, window_seconds=0) is False


class TestAddMessage:
    @pytest.mark.asyncio
    async def test_updates_ticket_counters(self, ticket_repo, message_repo):
        ticket_id = await seed_ticket(ticket_repo)

        for text in ("first", "second"):
            await message_repo.add_message(MessageCreate(ticket_id=ticket_id, text=text, user_id="user-1"))

        ticket = await ticket_repo.get_ticket(ticket_id)
        messages = await message_repo.get_messages(ticket_id)
        assert ticket.message_count == 2 == len(messages)
        assert ticket.has_unread_messages is True
        assert ticket.last_message_at is not None
        assert [m.text for m in messages] == ["first", "second"]
        assert messages[0].is_edited is False

    @pytest.mark.asyncio
    async def test_missing_ticket_rolls_back(self, store, message_repo):
        with pytest.raises(PersistenceError):
            await message_repo.add_message(MessageCreate(ticket_id="missing", text="hi", user_id="u"))

        assert await store.query("messages") == []

    @pytest.mark.asyncio
    async def test_get_messages_descending_with_limit(self, ticket_repo, message_repo):
        ticket_id = await seed_ticket(ticket_repo)
        for i in range(3):
            await message_repo.add_message(MessageCreate(ticket_id=ticket_id, text=str(i), user_id="u"))

        messages = await message_repo.get_messages(ticket_id, limit=2, ascending=False)

        assert [m.text for m in messages] == ["2", "1"]


class TestUpdateDelete:
    @pytest.mark.asyncio
    async def test_update_marks_edited(self, ticket_repo, message_repo):
        ticket_id = await seed_ticket(ticket_repo)
        message_id = await message_repo.add_message(MessageCreate(ticket_id=ticket_id, text="helo", user_id="u"))

        await message_repo.update_message(message_id, "hello")

        message = await message_repo.get_message(message_id)
        assert message.text == "hello"
        assert message.is_edited is True
        assert message.edited_at is not None

    @pytest.mark.asyncio
    async def test_delete_decrements_count(self, ticket_repo, message_repo):
        ticket_id = await seed_ticket(ticket_repo)
        message_id = await message_repo.add_message(MessageCreate(ticket_id=ticket_id, text="x", user_id="u"))

        await message_repo.delete_message(message_id)

        assert (await ticket_repo.get_ticket(ticket_id)).message_count == 0
        assert await message_repo.get_message(message_id) is None

    @pytest.mark.asyncio
    async def test_delete_missing(self, message_repo):
        with pytest.raises(NotFoundError):
            await message_repo.delete_message("missing")

    @pytest.mark.asyncio
    async def test_update_failure_propagates(self, message_repo):
        message_repo.store.update = AsyncMock(side_effect=PersistenceError("offline"))

        with pytest.raises(PersistenceError):
            await message_repo.update_message("m1", "text")


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_scoped_to_ticket(self, ticket_repo, message_repo):
        ticket_id = await seed_ticket(ticket_repo)
        other_id = await seed_ticket(ticket_repo)
        snapshots = []

        await message_repo.subscribe_to_messages(ticket_id, snapshots.append)
        await message_repo.add_message(MessageCreate(ticket_id=ticket_id, text="mine", user_id="u"))
        await message_repo.add_message(MessageCreate(ticket_id=other_id, text="theirs", user_id="u"))

        assert [m.text for m in snapshots[-1]] == ["mine"]
