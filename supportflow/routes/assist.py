"""
AI Assistant API Routes

Reply suggestions for agents working a ticket.
"""
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from supportflow.exceptions import AuthorizationError, NotFoundError, ValidationError
from supportflow.middleware.auth import get_current_identity
from supportflow.models.schemas import Identity, ReplySuggestionResult
from supportflow.services.reply_suggestions import ReplySuggestionService
from supportflow.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/assist", tags=["assist"])


class SuggestionRequest(BaseModel):
    """Request model for reply suggestions."""
    ticket_id: Optional[str] = None


@lru_cache()
def get_reply_suggestion_service() -> ReplySuggestionService:
    return ReplySuggestionService()


@router.post(
    "/suggestions",
    response_model=ReplySuggestionResult,
    response_model_exclude_none=True
)
async def generate_reply_suggestions(
    request: SuggestionRequest,
    caller: Optional[Identity] = Depends(get_current_identity),
    service: ReplySuggestionService = Depends(get_reply_suggestion_service)
) -> ReplySuggestionResult:
    """
    Generate three reply drafts for a ticket (admin only).

    Example:
        >>> POST /api/v1/assist/suggestions
        >>> Headers: Authorization: Bearer <jwt>
        >>> {"ticket_id": "abc123"}
    """
    try:
        return await service.generate(caller, request.ticket_id)
    except AuthorizationError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN if e.authenticated else status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
