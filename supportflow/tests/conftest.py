"""
pytest configuration and shared fixtures

Tests run against the in-memory document store and a scripted LLM; no
network access is needed.
"""
import os

os.environ.setdefault("DOCUMENT_STORE_BACKEND", "memory")
os.environ.setdefault("WEBHOOK_SECRET", "test-webhook-secret")

import json
from typing import Any, Dict, List, Optional

import pytest

from supportflow.models.schemas import TicketCreate, UserRecord
from supportflow.repositories.document_store import InMemoryDocumentStore
from supportflow.repositories.message_repository import MessageRepository
from supportflow.repositories.ticket_repository import TicketRepository
from supportflow.repositories.user_repository import UserRepository


class ScriptedLLM:
    """
    Stand-in for LLMService.

    Returns queued responses in order (a dict is JSON-encoded) or raises
    the queued exception. Every call is recorded.
    """

    def __init__(self, *responses: Any, model: str = "gpt-4o-mini"):
        self.model = model
        self.responses: List[Any] = list(responses)
        self.calls: List[Dict[str, Any]] = []
        self.on_call = None

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool = True
    ) -> str:
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if self.on_call is not None:
            await self.on_call()

        response = self.responses.pop(0) if self.responses else None
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return json.dumps(response)
        return response


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def ticket_repo(store):
    return TicketRepository(store)


@pytest.fixture
def message_repo(store):
    return MessageRepository(store)


@pytest.fixture
def user_repo(store):
    return UserRepository(store)


@pytest.fixture
def ticket_data():
    return TicketCreate(
        subject="Cannot login",
        description="I forgot my password and urgent help needed",
        user_id="user-1",
        user_email="user1@example.com",
        user_name="User One"
    )


async def seed_user(user_repo: UserRepository, user_id: str, role: str) -> UserRecord:
    user = UserRecord(id=user_id, email=f"{user_id}@example.com", display_name=user_id, role=role)
    await user_repo.save_user(user)
    return user


async def seed_ticket(
    ticket_repo: TicketRepository,
    subject: str = "Cannot login",
    description: str = "I forgot my password and urgent help needed",
    user_id: str = "user-1",
    category: Optional[str] = None
) -> str:
    ticket_id = await ticket_repo.create_ticket(TicketCreate(
        subject=subject,
        description=description,
        user_id=user_id
    ))
    if category is not None:
        await ticket_repo.store.update("tickets", ticket_id, {"category": category})
    return ticket_id
