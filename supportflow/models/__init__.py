"""
Pydantic models for SupportFlow AI
"""

from supportflow.models.schemas import (
    # Enums
    TicketStatus,
    Priority,
    TicketCategory,
    ProcessingStatus,
    MessageRole,
    UserRole,
    AnalysisSource,

    # Constants
    PRIORITY_INDEX,
    CATEGORIES,
    PRIORITIES,

    # Document Models
    AIMetadata,
    Ticket,
    TicketCreate,
    TicketFilters,
    Message,
    MessageCreate,
    UserRecord,
    Identity,

    # Analysis Models
    AnalysisResult,
    ReplySuggestionResult,
    TicketStats,

    # Utility Models
    ErrorResponse,
)

__all__ = [
    # Enums
    "TicketStatus",
    "Priority",
    "TicketCategory",
    "ProcessingStatus",
    "MessageRole",
    "UserRole",
    "AnalysisSource",

    # Constants
    "PRIORITY_INDEX",
    "CATEGORIES",
    "PRIORITIES",

    # Document Models
    "AIMetadata",
    "Ticket",
    "TicketCreate",
    "TicketFilters",
    "Message",
    "MessageCreate",
    "UserRecord",
    "Identity",

    # Analysis Models
    "AnalysisResult",
    "ReplySuggestionResult",
    "TicketStats",

    # Utility Models
    "ErrorResponse",
]
