"""
Pydantic models for SupportFlow AI

This module contains the schemas of the documents kept in the document store
(tickets, messages, users) plus the transient values passed between the
analysis pipeline, the reply-suggestion generator and the HTTP layer.

Persisted field names are snake_case and match the Supabase columns created
by ``supportflow.repositories.schema``.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, List

from pydantic import BaseModel, Field, field_validator, ConfigDict


# ============================================================================
# Enums
# ============================================================================

class TicketStatus(str, Enum):
    """Valid ticket statuses"""
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class Priority(str, Enum):
    """Valid ticket priorities"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketCategory(str, Enum):
    """Fixed category enumeration exposed to the classifier"""
    ACCOUNT_LOGIN = "Account & Login"
    TECHNICAL_SUPPORT = "Technical Support"
    BILLING_PAYMENTS = "Billing & Payments"
    FEATURE_REQUEST = "Feature Request"
    BUG_REPORT = "Bug Report"
    GENERAL_INQUIRY = "General Inquiry"


class ProcessingStatus(str, Enum):
    """
    Lifecycle of a ticket's AI analysis.

    Only advances: pending -> processing -> completed | failed.
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED)

    def can_advance_to(self, target: "ProcessingStatus") -> bool:
        """True if ``target`` is a legal next state"""
        target = ProcessingStatus(target)
        if self == ProcessingStatus.PENDING:
            return target == ProcessingStatus.PROCESSING
        if self == ProcessingStatus.PROCESSING:
            return target.is_terminal
        return False


class MessageRole(str, Enum):
    """Author role recorded on a message"""
    USER = "user"
    AGENT = "agent"


class UserRole(str, Enum):
    """Account roles"""
    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"

    @property
    def is_privileged(self) -> bool:
        return self in (UserRole.AGENT, UserRole.ADMIN)


class AnalysisSource(str, Enum):
    """Where an AnalysisResult came from"""
    MODEL = "model"
    FALLBACK = "fallback"


PRIORITY_INDEX: Dict[str, int] = {
    Priority.LOW.value: 1,
    Priority.MEDIUM.value: 2,
    Priority.HIGH.value: 3,
    Priority.URGENT.value: 4,
}

CATEGORIES: List[str] = [c.value for c in TicketCategory]
PRIORITIES: List[str] = [p.value for p in Priority]


# ============================================================================
# Document Models
# ============================================================================

class AIMetadata(BaseModel):
    """Analysis bookkeeping stored on every ticket (``ai_metadata``)"""
    model_config = ConfigDict(use_enum_values=True, validate_default=True, extra="ignore")

    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    model_version: Optional[str] = None
    used_fallback: bool = False
    error: Optional[str] = None


class Ticket(BaseModel):
    """
    Support ticket document (``tickets`` collection).

    subject, description and the requester fields are fixed at creation.
    Classification fields stay null until the analysis pipeline finishes.
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True, extra="ignore", from_attributes=True)

    id: Optional[str] = None
    subject: str
    description: str
    status: TicketStatus = TicketStatus.OPEN
    priority: Optional[Priority] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    user_id: str
    user_email: str = ""
    user_name: str = ""
    assigned_agent_id: Optional[str] = None
    assigned_agent_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None
    message_count: int = Field(0, ge=0)
    has_unread_messages: bool = False
    priority_index: Optional[int] = None
    category_index: Optional[str] = None
    ai_metadata: AIMetadata = Field(default_factory=AIMetadata)

    @field_validator("tags", mode="before")
    @classmethod
    def default_tags(cls, v):
        """Stored rows may carry null tags"""
        return v or []


class TicketCreate(BaseModel):
    """Fields a requester supplies when opening a ticket"""
    subject: str = Field(..., min_length=1, max_length=500)
    description: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    user_email: str = ""
    user_name: str = ""


class TicketFilters(BaseModel):
    """Optional filters for ticket listings"""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    status: Optional[TicketStatus] = None
    priority: Optional[Priority] = None
    category: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    user_id: Optional[str] = None


class Message(BaseModel):
    """Conversation message (``messages`` collection)"""
    model_config = ConfigDict(use_enum_values=True, validate_default=True, extra="ignore", from_attributes=True)

    id: Optional[str] = None
    ticket_id: str
    text: str
    user_id: str
    user_name: str = ""
    role: MessageRole = MessageRole.USER
    is_ai_suggestion: bool = False
    created_at: Optional[datetime] = None
    is_edited: bool = False
    edited_at: Optional[datetime] = None


class MessageCreate(BaseModel):
    """Fields supplied when replying on a ticket"""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    ticket_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    user_name: str = ""
    role: MessageRole = MessageRole.USER
    is_ai_suggestion: bool = False


class UserRecord(BaseModel):
    """Account record (``users`` collection)"""
    model_config = ConfigDict(use_enum_values=True, validate_default=True, extra="ignore")

    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    role: UserRole = UserRole.USER


class Identity(BaseModel):
    """Signed-in caller as reported by the identity provider"""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    role: Optional[UserRole] = None


# ============================================================================
# Analysis Models
# ============================================================================

class AnalysisResult(BaseModel):
    """Transient classification of a ticket (never persisted as-is)"""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    category: TicketCategory = TicketCategory.GENERAL_INQUIRY
    priority: Priority = Priority.MEDIUM
    tags: List[str] = Field(default_factory=list)
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    source: AnalysisSource = AnalysisSource.MODEL

    @property
    def priority_index(self) -> int:
        return PRIORITY_INDEX[self.priority]


class ReplySuggestionResult(BaseModel):
    """Response of the reply-suggestion generator"""
    success: bool = True
    suggestions: List[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)
    used_fallback: Optional[bool] = None


class TicketStats(BaseModel):
    """Aggregated counts for dashboards"""
    total: int = 0
    open: int = 0
    in_progress: int = 0
    resolved: int = 0
    closed: int = 0
    by_priority: Dict[str, int] = Field(default_factory=dict)
    by_category: Dict[str, int] = Field(default_factory=dict)


# ============================================================================
# Utility Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")
