"""
Ticket Store - client-side mirror of a user's tickets

Subscribes to the tickets of one requester (newest first), exposes
optimistic create / status updates and does all status, priority,
category and text filtering on the mirrored list.
"""
from datetime import datetime, timezone
from typing import List, Optional

from supportflow.config import get_settings
from supportflow.exceptions import ValidationError
from supportflow.models.schemas import AIMetadata, Ticket, TicketCreate, TicketStats, TicketStatus
from supportflow.repositories.document_store import DocumentStore
from supportflow.repositories.ticket_repository import (
    TicketRepository,
    compute_ticket_stats,
    matches_search,
)
from supportflow.stores.base import Scope, ScopeState, SyncStore
from supportflow.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class TicketStore(SyncStore[Ticket]):
    """
    Per-session ticket mirror.

    ``initialize(user_id)`` opens the single subscription; ``user_id=None``
    mirrors every ticket (agent dashboard).
    """

    prepend_temp_entities = True

    def __init__(self, store: DocumentStore, limit: Optional[int] = None):
        super().__init__(store)
        self.repository = TicketRepository(store)
        self.limit = limit or settings.ticket_subscription_limit
        self._scope: Scope[Ticket] = Scope(key=None)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def tickets(self) -> List[Ticket]:
        return list(self._scope.items)

    @property
    def loading(self) -> bool:
        return self._scope.loading

    @property
    def state(self) -> ScopeState:
        return self._scope.state

    @property
    def user_id(self) -> Optional[str]:
        return self._scope.key

    def _live_scopes(self) -> List[Scope[Ticket]]:
        return [self._scope]

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------
    async def initialize(self, user_id: Optional[str]) -> None:
        """Subscribe to a user's tickets; no-op if already subscribed to them"""
        if self._scope.active:
            if self._scope.key == user_id:
                return
            logger.info(f"Switching ticket scope from {self._scope.key} to {user_id}")
            self.cleanup()

        scope: Scope[Ticket] = Scope(key=user_id)
        # Writes issued before the first subscription stay pending; cleanup drops the rest
        scope.pending = self._scope.pending
        self._scope = scope

        await self._open(
            scope,
            lambda callback: self.repository.subscribe_to_user_tickets(user_id, callback, self.limit)
        )

    def cleanup(self) -> None:
        """Cancel the subscription and purge the mirror"""
        self._scope.close()
        self._scope = Scope(key=None)
        self._emit()

    # ------------------------------------------------------------------
    # Optimistic mutations
    # ------------------------------------------------------------------
    async def create_ticket(self, data: TicketCreate) -> str:
        """Create a ticket, showing a temporary entry until the write settles"""
        scope = self._scope

        def build(temp_id: str) -> Ticket:
            now = datetime.now(timezone.utc)
            return Ticket(
                id=temp_id,
                subject=data.subject,
                description=data.description,
                user_id=data.user_id,
                user_email=data.user_email,
                user_name=data.user_name,
                status=TicketStatus.OPEN,
                created_at=now,
                updated_at=now,
                ai_metadata=AIMetadata()
            )

        return await self._optimistic_create(
            scope,
            build,
            lambda: self.repository.create_ticket(data)
        )

    async def update_status(self, ticket_id: str, status: str) -> None:
        """Change a ticket's status optimistically"""
        try:
            status = TicketStatus(status).value
        except ValueError as exc:
            raise ValidationError(f"Invalid ticket status: {status}") from exc

        await self._optimistic_patch(
            self._scope,
            ticket_id,
            {"status": status, "updated_at": datetime.now(timezone.utc)},
            lambda: self.repository.update_status(ticket_id, status)
        )

    # ------------------------------------------------------------------
    # Client-side queries
    # ------------------------------------------------------------------
    def get_by_status(self, status: str) -> List[Ticket]:
        return [t for t in self._scope.items if t.status == status]

    def get_by_priority(self, priority: str) -> List[Ticket]:
        return [t for t in self._scope.items if t.priority == priority]

    def get_by_category(self, category: str) -> List[Ticket]:
        return [t for t in self._scope.items if t.category == category]

    def search(self, term: str) -> List[Ticket]:
        return [t for t in self._scope.items if matches_search(t, term)]

    def stats(self) -> TicketStats:
        return compute_ticket_stats(self._scope.items)
