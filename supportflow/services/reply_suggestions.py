"""
Reply Suggestion Service

On-demand reply drafts for admins. Authorization and input errors propagate
to the caller; any failure on the model path degrades to canned replies.
"""
from typing import Optional

from supportflow.agents.reply_suggester import (
    FALLBACK_SUGGESTION_CONFIDENCE,
    SUGGESTION_SYSTEM_PROMPT,
    build_suggestion_prompt,
    canned_suggestions,
    parse_suggestions,
)
from supportflow.config import get_settings
from supportflow.exceptions import AuthorizationError, NotFoundError, ValidationError
from supportflow.models.schemas import Identity, ReplySuggestionResult, UserRole
from supportflow.repositories.message_repository import MessageRepository
from supportflow.repositories.ticket_repository import TicketRepository
from supportflow.repositories.user_repository import UserRepository
from supportflow.services.llm_service import LLMService
from supportflow.utils.logger import get_logger
from supportflow.utils.validators import validate_ticket_id

logger = get_logger(__name__)
settings = get_settings()


class ReplySuggestionService:
    """Generate reply drafts for a ticket"""

    def __init__(
        self,
        tickets: Optional[TicketRepository] = None,
        messages: Optional[MessageRepository] = None,
        users: Optional[UserRepository] = None,
        llm: Optional[LLMService] = None
    ):
        self.tickets = tickets or TicketRepository()
        self.messages = messages or MessageRepository()
        self.users = users or UserRepository()
        self.llm = llm or LLMService()

    async def _require_admin(self, caller: Identity) -> None:
        user = await self.users.get_user(caller.id)
        if user is None or user.role != UserRole.ADMIN.value:
            logger.warning(f"Reply suggestions denied for {caller.id}")
            raise AuthorizationError("Only admins can generate reply suggestions")

    async def generate(self, caller: Optional[Identity], ticket_id: Optional[str]) -> ReplySuggestionResult:
        """
        Generate up to three reply suggestions

        Args:
            caller: Signed-in identity (None when unauthenticated)
            ticket_id: Ticket to draft replies for

        Returns:
            ReplySuggestionResult (always success=True)

        Raises:
            AuthorizationError: Unauthenticated or not an admin
            ValidationError: ticket_id missing or blank
            NotFoundError: Ticket does not exist
        """
        if caller is None:
            raise AuthorizationError("Authentication required", authenticated=False)

        if not validate_ticket_id(ticket_id):
            raise ValidationError("ticket_id is required")

        await self._require_admin(caller)

        ticket = await self.tickets.get_ticket(ticket_id)
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_id} not found")

        try:
            messages = await self.messages.get_messages(
                ticket_id,
                limit=settings.suggestion_context_messages,
                ascending=True
            )
            raw = await self.llm.complete(
                SUGGESTION_SYSTEM_PROMPT,
                build_suggestion_prompt(ticket, messages),
                temperature=settings.suggestion_temperature,
                max_tokens=settings.suggestion_max_tokens
            )
            suggestions, confidence = parse_suggestions(raw)
        except Exception as e:
            logger.warning(f"Reply suggestions for {ticket_id} fell back to canned replies: {e}")
            return ReplySuggestionResult(
                success=True,
                suggestions=canned_suggestions(ticket.category),
                confidence=FALLBACK_SUGGESTION_CONFIDENCE,
                used_fallback=True
            )

        logger.info(f"Generated {len(suggestions)} reply suggestions for {ticket_id}")
        return ReplySuggestionResult(
            success=True,
            suggestions=suggestions,
            confidence=confidence
        )
