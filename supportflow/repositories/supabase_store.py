"""
Supabase Document Store

Maps the DocumentStore interface onto Supabase:
- one table per collection, text primary key ``id`` generated client-side
- nested objects (``ai_metadata``) live in jsonb columns
- conditional updates become extra PostgREST filters
  (``ai_metadata.processing_status`` -> ``ai_metadata->>processing_status``)
- subscriptions use realtime ``postgres_changes`` channels; every change
  event re-runs the query and delivers the full snapshot

Author: AI Assistant POC
Date: 2025-11-05
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set
from uuid import uuid4

from supportflow.config import get_settings
from supportflow.exceptions import PersistenceError
from supportflow.repositories.document_store import (
    SERVER_TIMESTAMP,
    DocumentCallback,
    DocumentStore,
    Filter,
    Increment,
    OrderBy,
    SnapshotCallback,
    Subscription,
    get_field,
)
from supportflow.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

# Compare-and-swap rounds for an Increment before giving up
MAX_INCREMENT_ATTEMPTS = 5

_FILTER_METHODS = {
    "==": "eq",
    "!=": "neq",
    "<": "lt",
    "<=": "lte",
    ">": "gt",
    ">=": "gte",
    "in": "in_",
}


def column_path(path: str) -> str:
    """Translate a dotted field path into a PostgREST column expression"""
    head, *rest = path.split(".")
    if not rest:
        return head
    return head + "".join(f"->{part}" for part in rest[:-1]) + f"->>{rest[-1]}"


class SupabaseDocumentStore(DocumentStore):
    """DocumentStore backed by Supabase tables and realtime channels."""

    def __init__(self, supabase_client=None, schema: str = "public") -> None:
        self.client = supabase_client
        self.schema = schema
        self._client_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _get_client(self):
        if self.client is None:
            async with self._client_lock:
                if self.client is None:
                    from supabase import acreate_client  # Lazy import for tests

                    self.client = await acreate_client(
                        settings.supabase_url,
                        settings.SUPABASE_ADMIN_KEY
                    )
                    logger.info("SupabaseDocumentStore connected")
        return self.client

    @classmethod
    def _serialize(cls, value: Any, current: Any = None, now: Optional[datetime] = None) -> Any:
        """Resolve sentinels and convert values to JSON-compatible types"""
        now = now or datetime.now(timezone.utc)
        if value is SERVER_TIMESTAMP:
            return now.isoformat()
        if isinstance(value, Increment):
            return (current or 0) + value.amount
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, dict):
            return {k: cls._serialize(v, None, now) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [cls._serialize(v, None, now) for v in value]
        return value

    @staticmethod
    def _apply_filters(request, filters: Sequence[Filter]):
        for f in filters:
            if f.op == "array-contains":
                request = request.contains(column_path(f.field), [f.value])
                continue
            method = _FILTER_METHODS.get(f.op)
            if method is None:
                raise ValueError(f"Unsupported filter operator: {f.op}")
            value = list(f.value) if f.op == "in" else f.value
            request = getattr(request, method)(column_path(f.field), value)
        return request

    def _spawn(self, coro) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop; realtime task dropped")
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Create / Read
    # ------------------------------------------------------------------
    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid4().hex
        now = datetime.now(timezone.utc)
        payload = {
            key: self._serialize(value, None, now)
            for key, value in data.items()
            if key != "id"
        }
        payload["id"] = doc_id

        try:
            client = await self._get_client()
            response = await client.table(collection).insert(payload).execute()
        except Exception as exc:
            logger.error(f"Failed to create document in {collection}: {exc}")
            raise PersistenceError(f"Failed to create document in {collection}") from exc

        if not response.data:
            raise PersistenceError(f"Supabase insert into {collection} returned no data")

        return response.data[0].get("id", doc_id)

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        now = datetime.now(timezone.utc)
        payload = {
            key: self._serialize(value, None, now)
            for key, value in data.items()
            if key != "id"
        }
        payload["id"] = doc_id

        try:
            client = await self._get_client()
            await client.table(collection).upsert(payload).execute()
        except Exception as exc:
            logger.error(f"Failed to upsert {collection}/{doc_id}: {exc}")
            raise PersistenceError(f"Failed to upsert {collection}/{doc_id}") from exc

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            client = await self._get_client()
            response = await client.table(collection) \
                .select("*") \
                .eq("id", doc_id) \
                .limit(1) \
                .execute()
        except Exception as exc:
            logger.error(f"Failed to fetch {collection}/{doc_id}: {exc}")
            raise PersistenceError(f"Failed to fetch {collection}/{doc_id}") from exc

        rows = response.data or []
        return rows[0] if rows else None

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        try:
            client = await self._get_client()
            request = self._apply_filters(client.table(collection).select("*"), filters)
            if order_by is not None:
                request = request.order(column_path(order_by.field), desc=order_by.descending)
            if limit is not None:
                request = request.limit(limit)
            response = await request.execute()
        except ValueError:
            raise
        except Exception as exc:
            logger.error(f"Failed to query {collection}: {exc}")
            raise PersistenceError(f"Failed to query {collection}") from exc

        return list(response.data or [])

    # ------------------------------------------------------------------
    # Update / Delete
    # ------------------------------------------------------------------
    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None
    ) -> bool:
        expected = expected or {}
        increments = [key for key, value in fields.items() if isinstance(value, Increment)]

        if not increments:
            now = datetime.now(timezone.utc)
            payload = {key: self._serialize(value, None, now) for key, value in fields.items()}
            if await self._apply_update(collection, doc_id, payload, expected):
                return True
            if await self.get(collection, doc_id) is None:
                raise PersistenceError(f"No document to update: {collection}/{doc_id}")
            logger.debug(f"Precondition failed on {collection}/{doc_id}: {expected}")
            return False

        # PostgREST has no atomic increment: guard the write on the values read
        for attempt in range(MAX_INCREMENT_ATTEMPTS):
            current = await self.get(collection, doc_id)
            if current is None:
                raise PersistenceError(f"No document to update: {collection}/{doc_id}")
            if any(get_field(current, path) != value for path, value in expected.items()):
                logger.debug(f"Precondition failed on {collection}/{doc_id}: {expected}")
                return False

            now = datetime.now(timezone.utc)
            payload = {
                key: self._serialize(value, current.get(key), now)
                for key, value in fields.items()
            }
            guards = dict(expected)
            guards.update({key: current.get(key) for key in increments})
            if await self._apply_update(collection, doc_id, payload, guards):
                return True
            logger.debug(f"Concurrent write on {collection}/{doc_id}, retry {attempt + 1}")

        raise PersistenceError(f"Too many concurrent writes to {collection}/{doc_id}")

    async def _apply_update(
        self,
        collection: str,
        doc_id: str,
        payload: Dict[str, Any],
        guards: Dict[str, Any]
    ) -> bool:
        try:
            client = await self._get_client()
            request = client.table(collection).update(payload).eq("id", doc_id)
            for path, value in guards.items():
                if value is None:
                    request = request.is_(column_path(path), "null")
                else:
                    request = request.eq(column_path(path), value)
            response = await request.execute()
        except Exception as exc:
            logger.error(f"Failed to update {collection}/{doc_id}: {exc}")
            raise PersistenceError(f"Failed to update {collection}/{doc_id}") from exc
        return bool(response.data)

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            client = await self._get_client()
            response = await client.table(collection).delete().eq("id", doc_id).execute()
        except Exception as exc:
            logger.error(f"Failed to delete {collection}/{doc_id}: {exc}")
            raise PersistenceError(f"Failed to delete {collection}/{doc_id}") from exc

        if not response.data:
            raise PersistenceError(f"No document to delete: {collection}/{doc_id}")

    # ------------------------------------------------------------------
    # Realtime subscriptions
    # ------------------------------------------------------------------
    async def _open_channel(
        self,
        collection: str,
        realtime_filter: Optional[str],
        refresh
    ) -> Subscription:
        client = await self._get_client()
        topic = f"{collection}:{realtime_filter or '*'}:{uuid4().hex[:8]}"
        channel = client.channel(topic)
        subscription = Subscription()

        def on_change(payload):
            if subscription.active:
                self._spawn(refresh(subscription))

        kwargs = {"schema": self.schema, "table": collection, "callback": on_change}
        if realtime_filter:
            kwargs["filter"] = realtime_filter
        channel.on_postgres_changes("*", **kwargs)

        try:
            await channel.subscribe()
        except Exception as exc:
            logger.error(f"Failed to subscribe to {collection}: {exc}")
            try:
                await client.remove_channel(channel)
            except Exception as cleanup_exc:
                logger.warning(f"Failed to remove channel {topic}: {cleanup_exc}")
            raise PersistenceError(f"Failed to subscribe to {collection}") from exc

        subscription._cancel = lambda: self._spawn(client.remove_channel(channel))
        logger.info(f"Realtime channel opened: {topic}")
        return subscription

    async def subscribe_doc(
        self,
        collection: str,
        doc_id: str,
        callback: DocumentCallback
    ) -> Subscription:
        # One refresh at a time so a slow read never overwrites a newer one
        lock = asyncio.Lock()

        async def refresh(subscription: Subscription) -> None:
            async with lock:
                try:
                    document = await self.get(collection, doc_id)
                except PersistenceError as exc:
                    logger.error(f"Snapshot refresh for {collection}/{doc_id} failed: {exc}")
                    return
                if subscription.active:
                    callback(document)

        subscription = await self._open_channel(collection, f"id=eq.{doc_id}", refresh)
        await refresh(subscription)
        return subscription

    async def subscribe_query(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: Optional[OrderBy],
        limit: Optional[int],
        callback: SnapshotCallback
    ) -> Subscription:
        # Realtime accepts a single equality filter; the re-query applies all of them
        realtime_filter = next(
            (f"{f.field}=eq.{f.value}" for f in filters if f.op == "==" and "." not in f.field),
            None
        )

        lock = asyncio.Lock()

        async def refresh(subscription: Subscription) -> None:
            async with lock:
                try:
                    documents = await self.query(collection, filters, order_by, limit)
                except PersistenceError as exc:
                    logger.error(f"Snapshot refresh for {collection} failed: {exc}")
                    return
                if subscription.active:
                    callback(documents)

        subscription = await self._open_channel(collection, realtime_filter, refresh)
        await refresh(subscription)
        return subscription
