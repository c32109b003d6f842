"""
Repositories package for database operations

Provides repository classes over the document store for:
- tickets collection (TicketRepository)
- messages collection (MessageRepository)
- users collection (UserRepository)
"""
from functools import lru_cache

from supportflow.config import get_settings
from supportflow.repositories.document_store import (
    SERVER_TIMESTAMP,
    DocumentStore,
    Filter,
    Increment,
    InMemoryDocumentStore,
    OrderBy,
    Subscription,
)
from supportflow.repositories.message_repository import MessageRepository, can_edit_message
from supportflow.repositories.supabase_store import SupabaseDocumentStore
from supportflow.repositories.ticket_repository import TicketRepository
from supportflow.repositories.user_repository import UserRepository


@lru_cache()
def get_document_store() -> DocumentStore:
    """Process-wide document store selected by DOCUMENT_STORE_BACKEND"""
    backend = get_settings().document_store_backend.lower()
    if backend == "memory":
        return InMemoryDocumentStore()
    if backend == "supabase":
        return SupabaseDocumentStore()
    raise ValueError(f"Unknown document store backend: {backend}")


__all__ = [
    "SERVER_TIMESTAMP",
    "DocumentStore",
    "Filter",
    "Increment",
    "InMemoryDocumentStore",
    "OrderBy",
    "Subscription",
    "SupabaseDocumentStore",
    "TicketRepository",
    "MessageRepository",
    "UserRepository",
    "can_edit_message",
    "get_document_store",
]
