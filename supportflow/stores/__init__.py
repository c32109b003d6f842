"""
Client synchronization stores
"""
from .base import ScopeState, reconcile
from .message_store import MessageStore
from .ticket_store import TicketStore

__all__ = ["ScopeState", "reconcile", "MessageStore", "TicketStore"]
