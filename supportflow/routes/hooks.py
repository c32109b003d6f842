"""
Database webhook routes

Supabase database webhooks POST here on row changes of ``tickets``. An
INSERT starts the analysis pipeline; other events are acknowledged and
ignored.
"""
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from supportflow.exceptions import PersistenceError
from supportflow.middleware.auth import verify_webhook_secret
from supportflow.models.schemas import Ticket
from supportflow.services.analysis_pipeline import TicketAnalysisPipeline
from supportflow.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/hooks",
    tags=["hooks"],
    dependencies=[Depends(verify_webhook_secret)]
)


class DatabaseWebhookPayload(BaseModel):
    """Supabase database webhook body"""
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(..., description="INSERT | UPDATE | DELETE")
    table: str
    schema_name: str = Field("public", alias="schema")
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None


class WebhookResponse(BaseModel):
    status: str
    ticket_id: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None


@lru_cache()
def get_analysis_pipeline() -> TicketAnalysisPipeline:
    return TicketAnalysisPipeline()


@router.post("/tickets", response_model=WebhookResponse)
async def on_ticket_event(
    payload: DatabaseWebhookPayload,
    pipeline: TicketAnalysisPipeline = Depends(get_analysis_pipeline)
) -> WebhookResponse:
    """Run the analysis pipeline for newly inserted tickets"""
    if payload.type.upper() != "INSERT" or payload.table != "tickets":
        return WebhookResponse(status="ignored")

    if not payload.record:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="INSERT event without record"
        )

    try:
        ticket = Ticket.model_validate(payload.record)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid ticket record: {e}"
        )

    try:
        result = await pipeline.on_ticket_created(ticket)
    except PersistenceError as e:
        logger.error(f"Analysis bookkeeping failed for ticket {ticket.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to persist analysis"
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    if result is None:
        return WebhookResponse(status="skipped", ticket_id=ticket.id)

    return WebhookResponse(
        status="analyzed",
        ticket_id=ticket.id,
        category=result.category,
        priority=result.priority
    )
