"""
Client synchronization store primitives

A store mirrors one or more subscription scopes ("tickets of user X",
"messages of ticket Y"). Each scope keeps the last server snapshot plus the
pending optimistic operations keyed by a local sequence number; the visible
mirror is always ``reconcile(snapshot, pending)``.
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, TypeVar

from pydantic import BaseModel

from supportflow.repositories.document_store import DocumentStore, Subscription
from supportflow.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

TEMP_ID_PREFIX = "temp-"


class ScopeState(str, Enum):
    """Subscription lifecycle of a scope"""
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    LIVE = "live"


class OperationKind(str, Enum):
    CREATE = "create"
    PATCH = "patch"


@dataclass
class PendingOperation(Generic[T]):
    """
    Optimistic mutation not yet confirmed by a snapshot.

    CREATE carries the temporary entity; PATCH carries field changes for
    ``target_id``. Acknowledged patches are dropped at the next snapshot.
    """
    seq: int
    kind: OperationKind
    target_id: str
    entity: Optional[T] = None
    changes: Dict[str, Any] = field(default_factory=dict)
    acknowledged: bool = False


def is_temp_id(entity_id: Optional[str]) -> bool:
    return bool(entity_id) and entity_id.startswith(TEMP_ID_PREFIX)


def reconcile(
    snapshot: List[T],
    pending: Dict[int, PendingOperation[T]],
    prepend: bool
) -> List[T]:
    """
    Compute the visible mirror

    Args:
        snapshot: Last server snapshot in query order
        pending: Pending operations keyed by sequence number
        prepend: Insert temporary entities at the front (newest first
            listings) instead of the back

    Returns:
        Snapshot with temporary entities inserted and patches applied in
        sequence order
    """
    operations = [pending[seq] for seq in sorted(pending)]

    temps = [op.entity for op in operations if op.kind == OperationKind.CREATE]
    if prepend:
        items = list(reversed(temps)) + list(snapshot)
    else:
        items = list(snapshot) + temps

    for op in operations:
        if op.kind != OperationKind.PATCH:
            continue
        items = [
            item.model_copy(update=op.changes) if getattr(item, "id", None) == op.target_id else item
            for item in items
        ]

    return items


class Scope(Generic[T]):
    """One subscription scope and its mirror"""

    def __init__(self, key: Optional[str]):
        self.key = key
        self.state = ScopeState.UNSUBSCRIBED
        self.subscription: Optional[Subscription] = None
        self.snapshot: List[T] = []
        self.pending: Dict[int, PendingOperation[T]] = {}
        self.items: List[T] = []
        self.loading = False
        self.closed = False

    @property
    def active(self) -> bool:
        return self.state != ScopeState.UNSUBSCRIBED

    def close(self) -> None:
        """Cancel the subscription and purge mirrored data"""
        self.closed = True
        if self.subscription is not None:
            self.subscription.unsubscribe()
            self.subscription = None
        self.state = ScopeState.UNSUBSCRIBED
        self.snapshot = []
        self.pending = {}
        self.items = []
        self.loading = False


class SyncStore(Generic[T]):
    """
    Base class for the ticket and message stores.

    Provides the local sequence, listeners, the shared error field and the
    subscribe / snapshot / optimistic-operation plumbing.
    """

    prepend_temp_entities = False

    def __init__(self, store: DocumentStore):
        self.store = store
        self.error: Optional[str] = None
        self._sequence = itertools.count(1)
        self._listeners: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Listeners / error
    # ------------------------------------------------------------------
    def add_listener(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it"""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def _emit(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception as e:
                logger.error(f"Store listener failed: {e}", exc_info=True)

    def set_error(self, error: Optional[str]) -> None:
        self.error = error
        self._emit()

    # ------------------------------------------------------------------
    # Scope plumbing
    # ------------------------------------------------------------------
    def _next_seq(self) -> int:
        return next(self._sequence)

    @staticmethod
    def _temp_id(seq: int) -> str:
        return f"{TEMP_ID_PREFIX}{seq}"

    def _live_scopes(self) -> Iterable[Scope[T]]:
        raise NotImplementedError

    def _owner(self, seq: int, started_on: Scope[T]) -> Scope[T]:
        """Scope holding ``seq`` now; initialize may hand pending operations to a new scope"""
        for scope in self._live_scopes():
            if seq in scope.pending:
                return scope
        return started_on

    def _settle(self, seq: int, started_on: Scope[T]) -> None:
        """Drop a pending operation and recompute the scope that holds it"""
        scope = self._owner(seq, started_on)
        scope.pending.pop(seq, None)
        self._recompute(scope)

    def _recompute(self, scope: Scope[T]) -> None:
        scope.items = reconcile(scope.snapshot, scope.pending, self.prepend_temp_entities)
        self._emit()

    def _snapshot_handler(self, scope: Scope[T]) -> Callable[[List[T]], None]:
        def on_snapshot(items: List[T]) -> None:
            if scope.closed:
                return
            scope.snapshot = list(items)
            # In place: the dict may be shared with the scope an in-flight write started on
            for seq in [seq for seq, op in scope.pending.items() if op.acknowledged]:
                del scope.pending[seq]
            scope.state = ScopeState.LIVE
            scope.loading = False
            self._recompute(scope)

        return on_snapshot

    async def _open(self, scope: Scope[T], subscribe) -> None:
        """
        Subscribe a scope: UNSUBSCRIBED -> SUBSCRIBING -> LIVE

        Args:
            scope: Scope to open
            subscribe: ``async (callback) -> Subscription``
        """
        scope.state = ScopeState.SUBSCRIBING
        scope.loading = True
        scope.closed = False
        self._emit()

        try:
            subscription = await subscribe(self._snapshot_handler(scope))
        except Exception as e:
            logger.error(f"Subscription for scope {scope.key!r} failed: {e}")
            scope.state = ScopeState.UNSUBSCRIBED
            scope.loading = False
            self.set_error(str(e))
            raise

        if scope.closed:
            # Cleaned up while subscribing
            subscription.unsubscribe()
            return

        scope.subscription = subscription

    # ------------------------------------------------------------------
    # Optimistic operations
    # ------------------------------------------------------------------
    async def _optimistic_create(self, scope: Scope[T], build: Callable[[str], T], write):
        """
        Insert a temporary entity, run ``write`` and drop the entity again.

        On success the authoritative entity arrives through the subscription.
        On failure the error is recorded and re-raised.
        """
        seq = self._next_seq()
        temp_id = self._temp_id(seq)
        scope.pending[seq] = PendingOperation(
            seq=seq,
            kind=OperationKind.CREATE,
            target_id=temp_id,
            entity=build(temp_id)
        )
        self._recompute(scope)

        try:
            entity_id = await write()
        except Exception as e:
            self.error = str(e)
            self._settle(seq, scope)
            raise

        self._settle(seq, scope)
        return entity_id

    async def _optimistic_patch(self, scope: Scope[T], target_id: str, changes: Dict[str, Any], write) -> None:
        """
        Apply ``changes`` to ``target_id`` immediately and run ``write``.

        On failure the patch is dropped, which restores the server view.
        """
        seq = self._next_seq()
        operation = PendingOperation(
            seq=seq,
            kind=OperationKind.PATCH,
            target_id=target_id,
            changes=changes
        )
        scope.pending[seq] = operation
        self._recompute(scope)

        try:
            await write()
        except Exception as e:
            self.error = str(e)
            self._settle(seq, scope)
            raise

        operation.acknowledged = True
