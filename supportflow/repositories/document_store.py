"""
Document Store interface

Collection-oriented storage consumed by the repositories and client stores:
create / get / query / update / delete plus push-based subscriptions that
fire immediately with the current state and again after every change.

Server-assigned values are requested with sentinels:
- SERVER_TIMESTAMP: replaced by the store's clock at write time
- Increment(n): adds n to the stored numeric value

InMemoryDocumentStore is the reference implementation used for local
development and tests. SupabaseDocumentStore (supabase_store.py) is the
production backend.
"""
from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import uuid4

from supportflow.exceptions import PersistenceError
from supportflow.utils.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Sentinels and query primitives
# ============================================================================

class _ServerTimestamp:
    """Placeholder for a server-assigned timestamp"""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Increment:
    """Numeric increment applied by the store"""
    amount: int = 1


@dataclass(frozen=True)
class Filter:
    """
    Single query predicate.

    op is one of: ==, !=, <, <=, >, >=, in, array-contains
    """
    field: str
    op: str
    value: Any

    def matches(self, document: Dict[str, Any]) -> bool:
        actual = get_field(document, self.field)
        if self.op == "==":
            return actual == self.value
        if self.op == "!=":
            return actual != self.value
        if self.op == "in":
            return actual in self.value
        if self.op == "array-contains":
            return isinstance(actual, list) and self.value in actual
        if actual is None or self.value is None:
            return False
        if self.op == "<":
            return actual < self.value
        if self.op == "<=":
            return actual <= self.value
        if self.op == ">":
            return actual > self.value
        if self.op == ">=":
            return actual >= self.value
        raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class OrderBy:
    """Sort specification"""
    field: str
    descending: bool = False


SnapshotCallback = Callable[[List[Dict[str, Any]]], None]
DocumentCallback = Callable[[Optional[Dict[str, Any]]], None]


def get_field(document: Dict[str, Any], path: str) -> Any:
    """Resolve a dotted field path (``ai_metadata.processing_status``)"""
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


class Subscription:
    """
    Handle for a live subscription.

    unsubscribe() is synchronous and idempotent: once it returns, the
    callback is never invoked again.
    """

    def __init__(self, cancel: Optional[Callable[[], None]] = None):
        self._cancel = cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._cancel is not None:
            self._cancel()

    __call__ = unsubscribe


# ============================================================================
# Interface
# ============================================================================

class DocumentStore(ABC):
    """Abstract collection store"""

    @abstractmethod
    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        """Insert a document and return its generated id"""

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or replace a document under a caller-chosen id"""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a document by id, None when absent"""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Return documents matching all filters"""

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Partially update top-level fields of a document.

        Args:
            collection: Collection name
            doc_id: Document id
            fields: Top-level fields to overwrite (sentinels allowed)
            expected: Optional dotted-path -> value preconditions. The
                update is applied only when every precondition holds.

        Returns:
            True if applied, False if a precondition failed

        Raises:
            PersistenceError: Document missing or write failed
        """

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document"""

    @abstractmethod
    async def subscribe_doc(
        self,
        collection: str,
        doc_id: str,
        callback: DocumentCallback
    ) -> Subscription:
        """Push the document (or None) now and after every change"""

    @abstractmethod
    async def subscribe_query(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: Optional[OrderBy],
        limit: Optional[int],
        callback: SnapshotCallback
    ) -> Subscription:
        """Push the query result now and after every change"""


# ============================================================================
# In-memory implementation
# ============================================================================

@dataclass
class _Listener:
    collection: str
    callback: Callable[..., None]
    subscription: Subscription
    doc_id: Optional[str] = None
    filters: Sequence[Filter] = ()
    order_by: Optional[OrderBy] = None
    limit: Optional[int] = None


class InMemoryDocumentStore(DocumentStore):
    """
    Process-local document store.

    Snapshots are delivered synchronously: once on subscribe, then after
    every write that touches the subscribed collection. Server timestamps
    are strictly increasing so creation order is total.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._listeners: List[_Listener] = []
        self._last_timestamp: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _now(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _resolve(self, value: Any, current: Any, now: datetime) -> Any:
        """Replace sentinels with concrete values"""
        if value is SERVER_TIMESTAMP:
            return now
        if isinstance(value, Increment):
            return (current or 0) + value.amount
        if isinstance(value, dict):
            base = current if isinstance(current, dict) else {}
            return {k: self._resolve(v, base.get(k), now) for k, v in value.items()}
        return copy.deepcopy(value)

    def _table(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    @staticmethod
    def _with_id(doc_id: str, document: Dict[str, Any]) -> Dict[str, Any]:
        result = copy.deepcopy(document)
        result["id"] = doc_id
        return result

    def _run_query(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: Optional[OrderBy],
        limit: Optional[int]
    ) -> List[Dict[str, Any]]:
        rows = [
            self._with_id(doc_id, doc)
            for doc_id, doc in self._table(collection).items()
            if all(f.matches(doc) for f in filters)
        ]
        if order_by is not None:
            present = [r for r in rows if get_field(r, order_by.field) is not None]
            missing = [r for r in rows if get_field(r, order_by.field) is None]
            present.sort(
                key=lambda r: get_field(r, order_by.field),
                reverse=order_by.descending
            )
            rows = present + missing
        if limit is not None:
            rows = rows[:limit]
        return rows

    def _deliver(self, listener: _Listener) -> None:
        if not listener.subscription.active:
            return
        try:
            if listener.doc_id is not None:
                doc = self._table(listener.collection).get(listener.doc_id)
                listener.callback(
                    self._with_id(listener.doc_id, doc) if doc is not None else None
                )
            else:
                listener.callback(self._run_query(
                    listener.collection,
                    listener.filters,
                    listener.order_by,
                    listener.limit
                ))
        except Exception as e:
            logger.error(f"Snapshot listener on '{listener.collection}' failed: {e}", exc_info=True)

    def _notify(self, collection: str) -> None:
        for listener in list(self._listeners):
            if listener.collection == collection:
                self._deliver(listener)

    def _register(self, listener: _Listener) -> Subscription:
        self._listeners.append(listener)
        self._deliver(listener)
        return listener.subscription

    def _remove_listener(self, subscription: Subscription) -> None:
        self._listeners = [l for l in self._listeners if l.subscription is not subscription]

    # ------------------------------------------------------------------
    # DocumentStore API
    # ------------------------------------------------------------------
    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid4().hex
        now = self._now()
        document = {
            key: self._resolve(value, None, now)
            for key, value in data.items()
            if key != "id"
        }
        self._table(collection)[doc_id] = document
        logger.debug(f"Created {collection}/{doc_id}")
        self._notify(collection)
        return doc_id

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        now = self._now()
        self._table(collection)[doc_id] = {
            key: self._resolve(value, None, now)
            for key, value in data.items()
            if key != "id"
        }
        self._notify(collection)

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self._table(collection).get(doc_id)
        return self._with_id(doc_id, doc) if doc is not None else None

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        return self._run_query(collection, filters, order_by, limit)

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None
    ) -> bool:
        document = self._table(collection).get(doc_id)
        if document is None:
            raise PersistenceError(f"No document to update: {collection}/{doc_id}")

        if expected:
            for path, value in expected.items():
                if get_field(document, path) != value:
                    logger.debug(
                        f"Precondition failed on {collection}/{doc_id}: "
                        f"{path} != {value!r}"
                    )
                    return False

        now = self._now()
        for key, value in fields.items():
            if isinstance(value, dict):
                # Nested objects are replaced wholesale
                document[key] = self._resolve(value, {}, now)
            else:
                document[key] = self._resolve(value, document.get(key), now)

        self._notify(collection)
        return True

    async def delete(self, collection: str, doc_id: str) -> None:
        if self._table(collection).pop(doc_id, None) is None:
            raise PersistenceError(f"No document to delete: {collection}/{doc_id}")
        self._notify(collection)

    async def subscribe_doc(
        self,
        collection: str,
        doc_id: str,
        callback: DocumentCallback
    ) -> Subscription:
        subscription = Subscription()
        subscription._cancel = lambda: self._remove_listener(subscription)
        return self._register(_Listener(
            collection=collection,
            callback=callback,
            subscription=subscription,
            doc_id=doc_id
        ))

    async def subscribe_query(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: Optional[OrderBy],
        limit: Optional[int],
        callback: SnapshotCallback
    ) -> Subscription:
        subscription = Subscription()
        subscription._cancel = lambda: self._remove_listener(subscription)
        return self._register(_Listener(
            collection=collection,
            callback=callback,
            subscription=subscription,
            filters=tuple(filters),
            order_by=order_by,
            limit=limit
        ))

    @property
    def listener_count(self) -> int:
        """Number of live subscriptions (diagnostics)"""
        return len(self._listeners)
