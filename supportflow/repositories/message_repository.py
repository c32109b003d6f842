"""
Message Repository

Messages live in a top-level ``messages`` collection keyed by ``ticket_id``.
Adding or deleting a message keeps the parent ticket's ``message_count``,
``last_message_at`` and ``has_unread_messages`` in step.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from supportflow.config import get_settings
from supportflow.exceptions import NotFoundError, PersistenceError
from supportflow.models.schemas import Message, MessageCreate, UserRole
from supportflow.repositories.document_store import (
    SERVER_TIMESTAMP,
    DocumentStore,
    Filter,
    Increment,
    OrderBy,
    Subscription,
)
from supportflow.repositories.ticket_repository import TICKETS_COLLECTION
from supportflow.utils.logger import get_logger
from supportflow.utils.validators import sanitize_input

logger = get_logger(__name__)
settings = get_settings()

MESSAGES_COLLECTION = "messages"
DEFAULT_MESSAGE_LIMIT = 100


def can_edit_message(
    message: Message,
    editor_id: Optional[str] = None,
    editor_role: Optional[str] = None,
    now: Optional[datetime] = None,
    window_seconds: Optional[int] = None
) -> bool:
    """
    Check whether a message may still be edited.

    Agents and admins may edit at any time. Everyone else may edit only
    their own messages, and only while ``now - created_at`` is under the
    edit window (5 minutes by default).

    Args:
        message: Message to check
        editor_id: Id of the user attempting the edit (None skips the
            authorship check)
        editor_role: Role of that user
        now: Reference time (defaults to current UTC time)
        window_seconds: Edit window override

    Returns:
        True if the edit is allowed
    """
    if editor_role is not None and UserRole(editor_role).is_privileged:
        return True

    if editor_id is not None and editor_id != message.user_id:
        return False

    if message.created_at is None:
        # Server timestamp not assigned yet: the message was just written
        return True

    if window_seconds is None:
        window_seconds = settings.message_edit_window_seconds
    window = timedelta(seconds=window_seconds)
    now = now or datetime.now(timezone.utc)
    created_at = message.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return now - created_at < window


class MessageRepository:
    """Repository for messages collection operations."""

    def __init__(self, store: Optional[DocumentStore] = None) -> None:
        if store is None:
            from supportflow.repositories import get_document_store

            store = get_document_store()
        self.store = store
        self.collection = MESSAGES_COLLECTION

    @staticmethod
    def _deserialize(document: Dict[str, Any]) -> Message:
        return Message.model_validate(document)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    async def add_message(self, data: MessageCreate) -> str:
        """
        Add a message and bump the parent ticket's counters.

        If the ticket update fails the message is removed again so that
        message_count always equals the number of stored messages.
        """
        message_id = await self.store.create(self.collection, {
            "ticket_id": data.ticket_id,
            "text": sanitize_input(data.text),
            "user_id": data.user_id,
            "user_name": data.user_name,
            "role": data.role,
            "is_ai_suggestion": data.is_ai_suggestion,
            "created_at": SERVER_TIMESTAMP,
            "is_edited": False,
            "edited_at": None,
        })

        try:
            await self.store.update(TICKETS_COLLECTION, data.ticket_id, {
                "message_count": Increment(1),
                "last_message_at": SERVER_TIMESTAMP,
                "has_unread_messages": True,
                "updated_at": SERVER_TIMESTAMP,
            })
        except PersistenceError as exc:
            logger.error(f"Ticket {data.ticket_id} update failed, removing message {message_id}: {exc}")
            await self.store.delete(self.collection, message_id)
            raise

        logger.info(f"Message added: {message_id} (ticket {data.ticket_id})")
        return message_id

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    async def get_message(self, message_id: str) -> Optional[Message]:
        document = await self.store.get(self.collection, message_id)
        return self._deserialize(document) if document else None

    async def get_messages(
        self,
        ticket_id: str,
        limit: int = DEFAULT_MESSAGE_LIMIT,
        ascending: bool = True
    ) -> List[Message]:
        """Messages of a ticket ordered by creation time"""
        rows = await self.store.query(
            self.collection,
            [Filter("ticket_id", "==", ticket_id)],
            OrderBy("created_at", descending=not ascending),
            limit
        )
        return [self._deserialize(row) for row in rows]

    # ------------------------------------------------------------------
    # Update / Delete
    # ------------------------------------------------------------------
    async def update_message(self, message_id: str, text: str) -> None:
        await self.store.update(self.collection, message_id, {
            "text": sanitize_input(text),
            "is_edited": True,
            "edited_at": SERVER_TIMESTAMP,
        })
        logger.info(f"Message {message_id} updated")

    async def delete_message(self, message_id: str) -> None:
        """Delete a message (admin flow) and decrement the ticket counter"""
        message = await self.get_message(message_id)
        if message is None:
            raise NotFoundError(f"Message {message_id} not found")

        await self.store.delete(self.collection, message_id)
        await self.store.update(TICKETS_COLLECTION, message.ticket_id, {
            "message_count": Increment(-1),
            "updated_at": SERVER_TIMESTAMP,
        })
        logger.info(f"Message {message_id} deleted")

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------
    async def subscribe_to_messages(
        self,
        ticket_id: str,
        callback: Callable[[List[Message]], None]
    ) -> Subscription:
        """Live conversation of a ticket, oldest first"""
        def on_snapshot(documents: List[Dict[str, Any]]) -> None:
            try:
                messages = [self._deserialize(doc) for doc in documents]
            except Exception as exc:
                logger.error(f"Dropping malformed message snapshot: {exc}")
                return
            callback(messages)

        return await self.store.subscribe_query(
            self.collection,
            [Filter("ticket_id", "==", ticket_id)],
            OrderBy("created_at"),
            None,
            on_snapshot
        )
