"""
User Repository

Read access to the ``users`` collection. Records are keyed by the auth uid
and carry the role used for authorization decisions.
"""
from typing import Optional

from supportflow.models.schemas import UserRecord
from supportflow.repositories.document_store import DocumentStore
from supportflow.utils.logger import get_logger

logger = get_logger(__name__)

USERS_COLLECTION = "users"


class UserRepository:
    """Repository for users collection operations."""

    def __init__(self, store: Optional[DocumentStore] = None) -> None:
        if store is None:
            from supportflow.repositories import get_document_store

            store = get_document_store()
        self.store = store
        self.collection = USERS_COLLECTION

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        document = await self.store.get(self.collection, user_id)
        if document is None:
            logger.debug(f"No user record for {user_id}")
            return None
        return UserRecord.model_validate(document)

    async def save_user(self, user: UserRecord) -> None:
        """Create or replace a user record under its uid"""
        await self.store.set(self.collection, user.id, user.model_dump(exclude={"id"}))
