"""
Tests for reply suggestion generation

Tests:
- Authorization and validation ordering
- Conversation context
- Model success and canned fallback
"""
import pytest
from unittest.mock import AsyncMock

from supportflow.agents.reply_suggester import (
    CANNED_SUGGESTIONS,
    SUGGESTION_SYSTEM_PROMPT,
    canned_suggestions,
    parse_suggestions,
)
from supportflow.exceptions import (
    AuthorizationError,
    ExternalServiceError,
    MalformedResponseError,
    NotFoundError,
    ValidationError,
)
from supportflow.models.schemas import Identity, MessageCreate
from supportflow.services.reply_suggestions import ReplySuggestionService
from supportflow.tests.conftest import ScriptedLLM, seed_ticket, seed_user

ADMIN = Identity(id="admin-1", email="admin@example.com")
AGENT = Identity(id="agent-1", email="agent@example.com")


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def service(ticket_repo, message_repo, user_repo, llm):
    return ReplySuggestionService(ticket_repo, message_repo, user_repo, llm)


class TestAuthorization:
    """Caller checks happen before any model call"""

    @pytest.mark.asyncio
    async def test_unauthenticated(self, service, llm):
        with pytest.raises(AuthorizationError) as exc_info:
            await service.generate(None, "ticket-1")

        assert exc_info.value.authenticated is False
        assert llm.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", ["user", "agent"])
    async def test_non_admin_denied(self, service, llm, ticket_repo, user_repo, role):
        await seed_user(user_repo, "agent-1", role)
        ticket_id = await seed_ticket(ticket_repo)

        with pytest.raises(AuthorizationError) as exc_info:
            await service.generate(AGENT, ticket_id)

        assert exc_info.value.authenticated is True
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_missing_user_record_denied(self, service, llm, ticket_repo):
        ticket_id = await seed_ticket(ticket_repo)

        with pytest.raises(AuthorizationError):
            await service.generate(ADMIN, ticket_id)

        assert llm.calls == []


class TestValidation:
    """Input checks"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ticket_id", [None, "", "   "])
    async def test_missing_ticket_id_before_store_read(self, ticket_repo, message_repo, llm, ticket_id):
        users = AsyncMock()
        tickets = AsyncMock()
        service = ReplySuggestionService(tickets, message_repo, users, llm)

        with pytest.raises(ValidationError):
            await service.generate(ADMIN, ticket_id)

        users.get_user.assert_not_called()
        tickets.get_ticket.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_ticket(self, service, user_repo, llm):
        await seed_user(user_repo, "admin-1", "admin")

        with pytest.raises(NotFoundError):
            await service.generate(ADMIN, "does-not-exist")

        assert llm.calls == []


class TestModelPath:
    """Successful generation"""

    @pytest.mark.asyncio
    async def test_suggestions_returned(self, service, llm, ticket_repo, user_repo):
        await seed_user(user_repo, "admin-1", "admin")
        ticket_id = await seed_ticket(ticket_repo)
        llm.responses.append({"suggestions": ["One", "Two", "Three"], "confidence": 0.85})

        result = await service.generate(ADMIN, ticket_id)

        assert result.success is True
        assert result.suggestions == ["One", "Two", "Three"]
        assert result.confidence == 0.85
        assert result.used_fallback is None
        call = llm.calls[0]
        assert call["temperature"] == 0.7
        assert call["max_tokens"] == 800
        assert call["system_prompt"] == SUGGESTION_SYSTEM_PROMPT

    @pytest.mark.asyncio
    async def test_fewer_suggestions_tolerated(self, service, llm, ticket_repo, user_repo):
        await seed_user(user_repo, "admin-1", "admin")
        ticket_id = await seed_ticket(ticket_repo)
        llm.responses.append({"suggestions": ["Only one"], "confidence": 0.6})

        result = await service.generate(ADMIN, ticket_id)

        assert result.suggestions == ["Only one"]

    @pytest.mark.asyncio
    async def test_context_uses_earliest_messages(self, service, llm, ticket_repo, message_repo, user_repo):
        await seed_user(user_repo, "admin-1", "admin")
        ticket_id = await seed_ticket(ticket_repo)
        for i in range(12):
            await message_repo.add_message(MessageCreate(
                ticket_id=ticket_id,
                text=f"message {i}",
                user_id="user-1",
                role="user" if i % 2 == 0 else "agent"
            ))
        llm.responses.append({"suggestions": ["a", "b", "c"], "confidence": 0.9})

        await service.generate(ADMIN, ticket_id)

        prompt = llm.calls[0]["user_prompt"]
        assert "user: message 0\nagent: message 1" in prompt
        assert "message 9" in prompt
        assert "message 10" not in prompt
        assert "message 11" not in prompt

    @pytest.mark.asyncio
    async def test_context_omitted_without_messages(self, service, llm, ticket_repo, user_repo):
        await seed_user(user_repo, "admin-1", "admin")
        ticket_id = await seed_ticket(ticket_repo)
        llm.responses.append({"suggestions": ["a", "b", "c"], "confidence": 0.9})

        await service.generate(ADMIN, ticket_id)

        assert "Conversation" not in llm.calls[0]["user_prompt"]


class TestFallback:
    """Model failures degrade to canned replies"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("category", ["Account & Login", "Technical Support", "Billing & Payments"])
    async def test_canned_by_category(self, service, llm, ticket_repo, user_repo, category):
        await seed_user(user_repo, "admin-1", "admin")
        ticket_id = await seed_ticket(ticket_repo, category=category)
        llm.responses.append(ExternalServiceError("timeout"))

        result = await service.generate(ADMIN, ticket_id)

        assert result.success is True
        assert result.suggestions == CANNED_SUGGESTIONS[category]
        assert result.confidence == 0.5
        assert result.used_fallback is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("category", [None, "Feature Request"])
    async def test_default_bucket(self, service, llm, ticket_repo, user_repo, category):
        await seed_user(user_repo, "admin-1", "admin")
        ticket_id = await seed_ticket(ticket_repo, category=category)
        llm.responses.append("not json at all")

        result = await service.generate(ADMIN, ticket_id)

        assert result.suggestions == CANNED_SUGGESTIONS["default"]
        assert result.used_fallback is True


class TestSuggestionHelpers:
    def test_every_bucket_has_three(self):
        assert set(CANNED_SUGGESTIONS) >= {"Account & Login", "Technical Support", "Billing & Payments", "default"}
        for suggestions in CANNED_SUGGESTIONS.values():
            assert len(suggestions) == 3

    def test_canned_returns_copy(self):
        canned_suggestions("default").append("extra")

        assert len(CANNED_SUGGESTIONS["default"]) == 3

    def test_parse_truncates_to_three(self):
        suggestions, confidence = parse_suggestions('{"suggestions": ["a", "b", "c", "d"], "confidence": 2}')

        assert suggestions == ["a", "b", "c"]
        assert confidence == 1.0

    @pytest.mark.parametrize("raw", ['{"confidence": 0.5}', '{"suggestions": []}', '{"suggestions": "text"}'])
    def test_parse_malformed(self, raw):
        with pytest.raises(MalformedResponseError):
            parse_suggestions(raw)
