"""
Unit tests for TicketRepository

Tests:
- Creation defaults
- Listing, search and stats
- Status / assignment updates
- Analysis bookkeeping guards
"""
import pytest

from supportflow.exceptions import ValidationError
from supportflow.models.schemas import AIMetadata, AnalysisResult, TicketCreate, TicketFilters
from supportflow.repositories.ticket_repository import TicketRepository, compute_ticket_stats, matches_search
from supportflow.tests.conftest import seed_ticket


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_defaults(self, ticket_repo, ticket_data):
        ticket_id = await ticket_repo.create_ticket(ticket_data)

        ticket = await ticket_repo.get_ticket(ticket_id)
        assert ticket.id == ticket_id
        assert ticket.status == "open"
        assert ticket.priority is None
        assert ticket.category is None
        assert ticket.tags == []
        assert ticket.message_count == 0
        assert ticket.has_unread_messages is False
        assert ticket.ai_metadata.processing_status == "pending"
        assert ticket.ai_metadata.used_fallback is False
        assert ticket.created_at is not None

    @pytest.mark.asyncio
    async def test_input_sanitized(self, ticket_repo):
        ticket_id = await ticket_repo.create_ticket(TicketCreate(
            subject="  Hello\x00 ",
            description="desc",
            user_id="u"
        ))

        assert (await ticket_repo.get_ticket(ticket_id)).subject == "Hello"

    @pytest.mark.asyncio
    async def test_get_missing(self, ticket_repo):
        assert await ticket_repo.get_ticket("missing") is None

    def test_default_store_from_settings(self):
        repo = TicketRepository()

        assert repo.collection == "tickets"


class TestListing:
    @pytest.mark.asyncio
    async def test_user_tickets_newest_first(self, ticket_repo):
        first = await seed_ticket(ticket_repo, "first", "d", user_id="u1")
        await seed_ticket(ticket_repo, "other", "d", user_id="u2")
        second = await seed_ticket(ticket_repo, "second", "d", user_id="u1")

        tickets = await ticket_repo.get_user_tickets("u1")

        assert [t.id for t in tickets] == [second, first]

    @pytest.mark.asyncio
    async def test_all_tickets_with_filters(self, ticket_repo):
        a = await seed_ticket(ticket_repo, "a", "d")
        await seed_ticket(ticket_repo, "b", "d")
        await ticket_repo.update_status(a, "resolved")

        resolved = await ticket_repo.get_all_tickets(TicketFilters(status="resolved"))
        everything = await ticket_repo.get_all_tickets()

        assert [t.id for t in resolved] == [a]
        assert len(everything) == 2

    @pytest.mark.asyncio
    async def test_filter_by_priority_and_category(self, ticket_repo):
        ticket_id = await seed_ticket(ticket_repo)
        await seed_ticket(ticket_repo, "other", "d")
        await ticket_repo.begin_analysis(ticket_id, AIMetadata(processing_status="processing"))
        await ticket_repo.save_analysis(
            ticket_id,
            AnalysisResult(category="Bug Report", priority="high"),
            AIMetadata(processing_status="completed")
        )

        by_priority = await ticket_repo.get_all_tickets(TicketFilters(priority="high"))
        by_category = await ticket_repo.get_all_tickets(TicketFilters(category="Bug Report"))

        assert [t.id for t in by_priority] == [ticket_id]
        assert [t.id for t in by_category] == [ticket_id]

    @pytest.mark.asyncio
    async def test_search(self, ticket_repo):
        match = await seed_ticket(ticket_repo, "Printer offline", "It stopped", user_id="u1")
        await seed_ticket(ticket_repo, "Billing", "Invoice wrong", user_id="u1")

        results = await ticket_repo.search_tickets("PRINTER", user_id="u1")

        assert [t.id for t in results] == [match]

    @pytest.mark.asyncio
    async def test_stats(self, ticket_repo):
        a = await seed_ticket(ticket_repo, "a", "d")
        await seed_ticket(ticket_repo, "b", "d")
        await ticket_repo.update_status(a, "closed")

        stats = await ticket_repo.get_ticket_stats()

        assert stats.total == 2
        assert stats.open == 1
        assert stats.closed == 1


class TestUpdates:
    @pytest.mark.asyncio
    async def test_invalid_status(self, ticket_repo):
        ticket_id = await seed_ticket(ticket_repo)

        with pytest.raises(ValidationError):
            await ticket_repo.update_status(ticket_id, "archived")

    @pytest.mark.asyncio
    async def test_assign_moves_to_in_progress(self, ticket_repo):
        ticket_id = await seed_ticket(ticket_repo)

        await ticket_repo.assign_ticket(ticket_id, "agent-1", "Agent One")

        ticket = await ticket_repo.get_ticket(ticket_id)
        assert ticket.assigned_agent_id == "agent-1"
        assert ticket.assigned_agent_name == "Agent One"
        assert ticket.status == "in-progress"

    @pytest.mark.asyncio
    async def test_mark_as_read(self, ticket_repo):
        ticket_id = await seed_ticket(ticket_repo)
        await ticket_repo.store.update("tickets", ticket_id, {"has_unread_messages": True})

        await ticket_repo.mark_as_read(ticket_id)

        assert (await ticket_repo.get_ticket(ticket_id)).has_unread_messages is False


class TestAnalysisBookkeeping:
    @pytest.mark.asyncio
    async def test_save_requires_processing(self, ticket_repo):
        ticket_id = await seed_ticket(ticket_repo)

        applied = await ticket_repo.save_analysis(
            ticket_id,
            AnalysisResult(category="Bug Report", priority="high"),
            AIMetadata(processing_status="completed")
        )

        assert applied is False
        assert (await ticket_repo.get_ticket(ticket_id)).ai_metadata.processing_status == "pending"

    @pytest.mark.asyncio
    async def test_save_rejects_non_terminal(self, ticket_repo):
        ticket_id = await seed_ticket(ticket_repo)

        with pytest.raises(ValueError):
            await ticket_repo.save_analysis(
                ticket_id,
                AnalysisResult(),
                AIMetadata(processing_status="processing")
            )

    @pytest.mark.asyncio
    async def test_no_regression_after_terminal(self, ticket_repo):
        ticket_id = await seed_ticket(ticket_repo)
        await ticket_repo.begin_analysis(ticket_id, AIMetadata(processing_status="processing"))
        await ticket_repo.save_analysis(ticket_id, AnalysisResult(), AIMetadata(processing_status="failed"))

        again = await ticket_repo.begin_analysis(ticket_id, AIMetadata(processing_status="processing"))

        assert again is False
        assert (await ticket_repo.get_ticket(ticket_id)).ai_metadata.processing_status == "failed"


class TestRealtime:
    @pytest.mark.asyncio
    async def test_subscribe_to_ticket(self, ticket_repo):
        ticket_id = await seed_ticket(ticket_repo)
        seen = []

        subscription = await ticket_repo.subscribe_to_ticket(ticket_id, seen.append)
        await ticket_repo.update_status(ticket_id, "resolved")
        subscription.unsubscribe()

        assert [t.status for t in seen] == ["open", "resolved"]

    @pytest.mark.asyncio
    async def test_subscribe_all_tickets(self, ticket_repo):
        snapshots = []

        await ticket_repo.subscribe_to_user_tickets(None, snapshots.append)
        await seed_ticket(ticket_repo, user_id="u1")
        await seed_ticket(ticket_repo, user_id="u2")

        assert [len(s) for s in snapshots] == [0, 1, 2]


class TestHelpers:
    def test_matches_search_tags(self):
        from supportflow.models.schemas import Ticket

        ticket = Ticket(subject="s", description="d", user_id="u", tags=["Refund"])

        assert matches_search(ticket, "refund")
        assert not matches_search(ticket, "login")

    def test_compute_stats_counts(self):
        from supportflow.models.schemas import Ticket

        tickets = [
            Ticket(subject="s", description="d", user_id="u", priority="high", category="Bug Report"),
            Ticket(subject="s", description="d", user_id="u", status="in-progress", priority="high"),
        ]

        stats = compute_ticket_stats(tickets)

        assert stats.total == 2
        assert stats.in_progress == 1
        assert stats.by_priority == {"high": 2}
        assert stats.by_category == {"Bug Report": 1}
