"""
Message Store - client-side mirror of ticket conversations

One scope per open ticket, each with at most one live subscription
(oldest message first).
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional

from supportflow.models.schemas import Message, MessageCreate
from supportflow.repositories.document_store import DocumentStore
from supportflow.repositories.message_repository import MessageRepository
from supportflow.stores.base import Scope, ScopeState, SyncStore
from supportflow.utils.logger import get_logger

logger = get_logger(__name__)


class MessageStore(SyncStore[Message]):
    """Per-session message mirror keyed by ticket id"""

    prepend_temp_entities = False

    def __init__(self, store: DocumentStore):
        super().__init__(store)
        self.repository = MessageRepository(store)
        self._scopes: Dict[str, Scope[Message]] = {}

    def _live_scopes(self) -> List[Scope[Message]]:
        return list(self._scopes.values())

    def _scope_for(self, ticket_id: str) -> Scope[Message]:
        scope = self._scopes.get(ticket_id)
        if scope is None:
            scope = Scope(key=ticket_id)
            self._scopes[ticket_id] = scope
        return scope

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    def messages(self, ticket_id: str) -> List[Message]:
        scope = self._scopes.get(ticket_id)
        return list(scope.items) if scope else []

    def is_loading(self, ticket_id: str) -> bool:
        scope = self._scopes.get(ticket_id)
        return scope.loading if scope else False

    def state(self, ticket_id: str) -> ScopeState:
        scope = self._scopes.get(ticket_id)
        return scope.state if scope else ScopeState.UNSUBSCRIBED

    @property
    def ticket_ids(self) -> List[str]:
        """Tickets with a live or pending subscription"""
        return [key for key, scope in self._scopes.items() if scope.active]

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------
    async def initialize(self, ticket_id: str) -> None:
        """Subscribe to a ticket's messages; no-op if already subscribed"""
        scope = self._scope_for(ticket_id)
        if scope.active:
            return

        await self._open(
            scope,
            lambda callback: self.repository.subscribe_to_messages(ticket_id, callback)
        )

    def cleanup(self, ticket_id: str) -> None:
        scope = self._scopes.pop(ticket_id, None)
        if scope is None:
            return
        scope.close()
        self._emit()

    def cleanup_all(self) -> None:
        for ticket_id in list(self._scopes):
            self.cleanup(ticket_id)

    # ------------------------------------------------------------------
    # Optimistic mutations
    # ------------------------------------------------------------------
    async def add_message(self, data: MessageCreate) -> str:
        """Append a temporary message and write it"""
        scope = self._scope_for(data.ticket_id)

        def build(temp_id: str) -> Message:
            return Message(
                id=temp_id,
                ticket_id=data.ticket_id,
                text=data.text,
                user_id=data.user_id,
                user_name=data.user_name,
                role=data.role,
                is_ai_suggestion=data.is_ai_suggestion,
                created_at=datetime.now(timezone.utc)
            )

        return await self._optimistic_create(
            scope,
            build,
            lambda: self.repository.add_message(data)
        )

    async def update_message(self, ticket_id: str, message_id: str, text: str) -> None:
        """Edit a message's text optimistically"""
        await self._optimistic_patch(
            self._scope_for(ticket_id),
            message_id,
            {"text": text, "is_edited": True, "edited_at": datetime.now(timezone.utc)},
            lambda: self.repository.update_message(message_id, text)
        )
