"""
Ticket Repository

CRUD, analysis bookkeeping and realtime subscriptions for the ``tickets``
collection.

Listing queries keep to the requester-scope + created_at ordering so only a
single composite index is needed; finer filtering (status, priority,
category, free text) happens on the fetched rows.
"""
from __future__ import annotations

from collections import Counter
from typing import Any, Callable, Dict, Iterable, List, Optional

from supportflow.exceptions import ValidationError
from supportflow.models.schemas import (
    PRIORITY_INDEX,
    AIMetadata,
    AnalysisResult,
    ProcessingStatus,
    Ticket,
    TicketCreate,
    TicketFilters,
    TicketStats,
    TicketStatus,
)
from supportflow.repositories.document_store import (
    SERVER_TIMESTAMP,
    DocumentStore,
    Filter,
    OrderBy,
    Subscription,
)
from supportflow.utils.logger import get_logger
from supportflow.utils.validators import sanitize_input

logger = get_logger(__name__)

TICKETS_COLLECTION = "tickets"
DEFAULT_LIST_LIMIT = 100
STATS_LIMIT = 1000


def compute_ticket_stats(tickets: Iterable[Ticket]) -> TicketStats:
    """Aggregate status / priority / category counts"""
    tickets = list(tickets)
    statuses = Counter(t.status for t in tickets)
    return TicketStats(
        total=len(tickets),
        open=statuses.get(TicketStatus.OPEN.value, 0),
        in_progress=statuses.get(TicketStatus.IN_PROGRESS.value, 0),
        resolved=statuses.get(TicketStatus.RESOLVED.value, 0),
        closed=statuses.get(TicketStatus.CLOSED.value, 0),
        by_priority=dict(Counter(t.priority for t in tickets if t.priority)),
        by_category=dict(Counter(t.category for t in tickets if t.category)),
    )


def matches_search(ticket: Ticket, term: str) -> bool:
    """Case-insensitive match on subject, description, category and tags"""
    needle = term.lower()
    return (
        needle in ticket.subject.lower()
        or needle in ticket.description.lower()
        or needle in (ticket.category or "").lower()
        or any(needle in tag.lower() for tag in ticket.tags)
    )


class TicketRepository:
    """Repository for tickets collection operations."""

    def __init__(self, store: Optional[DocumentStore] = None) -> None:
        if store is None:
            from supportflow.repositories import get_document_store

            store = get_document_store()
        self.store = store
        self.collection = TICKETS_COLLECTION

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _deserialize(document: Dict[str, Any]) -> Ticket:
        return Ticket.model_validate(document)

    @staticmethod
    def _user_scope(user_id: str) -> List[Filter]:
        return [Filter("user_id", "==", user_id)]

    @staticmethod
    def _newest_first() -> OrderBy:
        return OrderBy("created_at", descending=True)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    async def create_ticket(self, data: TicketCreate) -> str:
        """
        Create a ticket in the open / pending-analysis state.

        The database webhook on insert starts the analysis pipeline; callers
        get the id back without waiting for it.
        """
        payload = {
            "subject": sanitize_input(data.subject),
            "description": sanitize_input(data.description),
            "user_id": data.user_id,
            "user_email": data.user_email,
            "user_name": data.user_name,
            "status": TicketStatus.OPEN.value,
            "priority": None,
            "category": None,
            "tags": [],
            "assigned_agent_id": None,
            "assigned_agent_name": None,
            "message_count": 0,
            "has_unread_messages": False,
            "last_message_at": None,
            "priority_index": None,
            "category_index": None,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
            "ai_metadata": AIMetadata().model_dump(),
        }

        ticket_id = await self.store.create(self.collection, payload)
        logger.info(f"Ticket created: {ticket_id}")
        return ticket_id

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        document = await self.store.get(self.collection, ticket_id)
        return self._deserialize(document) if document else None

    async def get_user_tickets(self, user_id: str, limit: int = DEFAULT_LIST_LIMIT) -> List[Ticket]:
        """Requester's tickets, newest first"""
        rows = await self.store.query(
            self.collection,
            self._user_scope(user_id),
            self._newest_first(),
            limit
        )
        return [self._deserialize(row) for row in rows]

    async def get_all_tickets(
        self,
        filters: Optional[TicketFilters] = None,
        limit: int = DEFAULT_LIST_LIMIT
    ) -> List[Ticket]:
        """All tickets (agent/admin view), newest first"""
        constraints: List[Filter] = []
        if filters is not None:
            if filters.user_id:
                constraints.append(Filter("user_id", "==", filters.user_id))
            if filters.status:
                constraints.append(Filter("status", "==", filters.status))
            if filters.priority:
                constraints.append(Filter("priority_index", "==", PRIORITY_INDEX[filters.priority]))
            if filters.category:
                constraints.append(Filter("category_index", "==", filters.category))
            if filters.assigned_agent_id:
                constraints.append(Filter("assigned_agent_id", "==", filters.assigned_agent_id))

        rows = await self.store.query(self.collection, constraints, self._newest_first(), limit)
        return [self._deserialize(row) for row in rows]

    async def search_tickets(self, term: str, user_id: Optional[str] = None) -> List[Ticket]:
        """Free-text search over the latest tickets (filtered in process)"""
        constraints = self._user_scope(user_id) if user_id else []
        rows = await self.store.query(
            self.collection,
            constraints,
            self._newest_first(),
            DEFAULT_LIST_LIMIT
        )
        return [t for t in map(self._deserialize, rows) if matches_search(t, term)]

    async def get_ticket_stats(self, user_id: Optional[str] = None) -> TicketStats:
        constraints = self._user_scope(user_id) if user_id else []
        rows = await self.store.query(self.collection, constraints, None, STATS_LIMIT)
        return compute_ticket_stats(self._deserialize(row) for row in rows)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------
    async def update_status(self, ticket_id: str, status: str) -> None:
        try:
            status = TicketStatus(status).value
        except ValueError as exc:
            raise ValidationError(f"Invalid ticket status: {status}") from exc

        await self.store.update(self.collection, ticket_id, {
            "status": status,
            "updated_at": SERVER_TIMESTAMP,
        })
        logger.info(f"Ticket {ticket_id} status updated to {status}")

    async def assign_ticket(self, ticket_id: str, agent_id: str, agent_name: str) -> None:
        """Assign to an agent; assignment moves the ticket to in-progress"""
        await self.store.update(self.collection, ticket_id, {
            "assigned_agent_id": agent_id,
            "assigned_agent_name": agent_name,
            "status": TicketStatus.IN_PROGRESS.value,
            "updated_at": SERVER_TIMESTAMP,
        })
        logger.info(f"Ticket {ticket_id} assigned to {agent_name}")

    async def mark_as_read(self, ticket_id: str) -> None:
        await self.store.update(self.collection, ticket_id, {
            "has_unread_messages": False,
            "updated_at": SERVER_TIMESTAMP,
        })

    # ------------------------------------------------------------------
    # Analysis bookkeeping
    # ------------------------------------------------------------------
    async def begin_analysis(self, ticket_id: str, metadata: AIMetadata) -> bool:
        """
        Move ai_metadata from pending to processing.

        Conditional on the stored status still being pending, so a duplicated
        create event cannot start a second analysis.

        Returns:
            True if this caller owns the analysis
        """
        applied = await self.store.update(
            self.collection,
            ticket_id,
            {"ai_metadata": metadata.model_dump()},
            expected={"ai_metadata.processing_status": ProcessingStatus.PENDING.value}
        )
        if not applied:
            logger.warning(f"Ticket {ticket_id} is no longer pending; analysis skipped")
        return applied

    async def save_analysis(
        self,
        ticket_id: str,
        result: AnalysisResult,
        metadata: AIMetadata
    ) -> bool:
        """
        Persist classification fields and terminal ai_metadata in one write.

        Conditional on the stored status being processing, which keeps the
        status from ever moving backwards.
        """
        if not ProcessingStatus(metadata.processing_status).is_terminal:
            raise ValueError("save_analysis requires a terminal processing status")

        applied = await self.store.update(
            self.collection,
            ticket_id,
            {
                "category": result.category,
                "priority": result.priority,
                "tags": list(result.tags),
                "priority_index": result.priority_index,
                "category_index": result.category,
                "ai_metadata": metadata.model_dump(),
                "updated_at": SERVER_TIMESTAMP,
            },
            expected={"ai_metadata.processing_status": ProcessingStatus.PROCESSING.value}
        )
        if not applied:
            logger.warning(f"Ticket {ticket_id} left processing before the result was saved")
        return applied

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------
    async def subscribe_to_ticket(
        self,
        ticket_id: str,
        callback: Callable[[Optional[Ticket]], None]
    ) -> Subscription:
        def on_snapshot(document: Optional[Dict[str, Any]]) -> None:
            callback(self._deserialize(document) if document else None)

        return await self.store.subscribe_doc(self.collection, ticket_id, on_snapshot)

    async def subscribe_to_user_tickets(
        self,
        user_id: Optional[str],
        callback: Callable[[List[Ticket]], None],
        limit: int = DEFAULT_LIST_LIMIT
    ) -> Subscription:
        """
        Live requester-scoped ticket list, newest first.

        ``user_id=None`` subscribes to every ticket (agent dashboard).
        """
        def on_snapshot(documents: List[Dict[str, Any]]) -> None:
            try:
                tickets = [self._deserialize(doc) for doc in documents]
            except Exception as exc:
                logger.error(f"Dropping malformed ticket snapshot: {exc}")
                return
            callback(tickets)

        constraints = self._user_scope(user_id) if user_id else []
        return await self.store.subscribe_query(
            self.collection,
            constraints,
            self._newest_first(),
            limit,
            on_snapshot
        )
