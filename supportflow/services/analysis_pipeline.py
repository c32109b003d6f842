"""
Ticket Analysis Pipeline

Runs once per newly created ticket:

1. pending -> processing (conditional write, before the model call)
2. model classification
3. completed with the model result, or failed with the keyword fallback

Model failures never escape; store failures in the bookkeeping writes are
logged and re-raised to the trigger.
"""
from datetime import datetime, timezone
from typing import Optional

from supportflow.agents.categorizer import TicketCategorizer
from supportflow.agents.fallback import fallback_classify
from supportflow.exceptions import PersistenceError
from supportflow.models.schemas import AIMetadata, AnalysisResult, ProcessingStatus, Ticket
from supportflow.repositories.ticket_repository import TicketRepository
from supportflow.utils.logger import get_logger

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TicketAnalysisPipeline:
    """Classify a new ticket and persist the outcome"""

    def __init__(
        self,
        tickets: Optional[TicketRepository] = None,
        categorizer: Optional[TicketCategorizer] = None
    ):
        self.tickets = tickets or TicketRepository()
        self.categorizer = categorizer or TicketCategorizer()

    async def on_ticket_created(self, ticket: Ticket) -> Optional[AnalysisResult]:
        """
        Analyze a newly created ticket

        Args:
            ticket: Ticket as delivered by the create trigger (id required)

        Returns:
            The persisted AnalysisResult, or None if another invocation
            already owns the analysis or the ticket left processing before
            the result was written

        Raises:
            PersistenceError: A bookkeeping write failed
        """
        ticket_id = ticket.id
        if not ticket_id:
            raise ValueError("Ticket id is required")

        if ProcessingStatus(ticket.ai_metadata.processing_status) != ProcessingStatus.PENDING:
            logger.info(
                f"Ticket {ticket_id} already {ticket.ai_metadata.processing_status}; skipping analysis"
            )
            return None

        started_at = _now()
        processing = AIMetadata(
            processing_status=ProcessingStatus.PROCESSING,
            started_at=started_at
        )

        try:
            owned = await self.tickets.begin_analysis(ticket_id, processing)
        except PersistenceError as e:
            logger.error(f"Failed to mark ticket {ticket_id} as processing: {e}")
            raise

        if not owned:
            return None

        logger.info(f"Analyzing ticket {ticket_id}")

        try:
            result = await self.categorizer.classify(ticket.subject, ticket.description)
            metadata = AIMetadata(
                processing_status=ProcessingStatus.COMPLETED,
                started_at=started_at,
                completed_at=_now(),
                confidence=result.confidence,
                model_version=self.categorizer.model_version,
                used_fallback=False
            )
        except Exception as e:
            logger.warning(f"Model classification failed for ticket {ticket_id}, using fallback: {e}")
            result = fallback_classify(f"{ticket.subject} {ticket.description}".lower())
            metadata = AIMetadata(
                processing_status=ProcessingStatus.FAILED,
                started_at=started_at,
                completed_at=_now(),
                used_fallback=True,
                error=str(e)
            )

        try:
            saved = await self.tickets.save_analysis(ticket_id, result, metadata)
        except PersistenceError as e:
            logger.error(f"Failed to save analysis for ticket {ticket_id}: {e}")
            raise

        if not saved:
            logger.info(f"Analysis result for ticket {ticket_id} discarded")
            return None

        logger.info(
            f"Ticket {ticket_id} analyzed: {result.category} / {result.priority} "
            f"({metadata.processing_status})"
        )
        return result
