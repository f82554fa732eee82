"""
Shared test fixtures and configuration.
"""

import os

# Set test environment variables before importing app modules
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("LOG_CONSOLE_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:////tmp/expressive_chat_test.db")

import asyncio  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from expressive_chat.config import settings  # noqa: E402
from expressive_chat.core.orchestrator import ConversationOrchestrator  # noqa: E402
from expressive_chat.llm.base import LLMProvider, LLMResponse  # noqa: E402
from expressive_chat.storage import (  # noqa: E402
    close_database,
    init_chat_storage,
    init_database,
    init_user_storage,
)

PNG_DATA_URI = (
    "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR4"
    "2mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


class FakeLLMProvider(LLMProvider):
    """In-memory model that records every request it receives."""

    name = "fake"

    def __init__(self, replies=None, error=None, delay=0.0):
        super().__init__(api_key="fake-key", model="fake-model")
        self.replies = list(replies or [])
        self.error = error
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def chat_completion(self, messages, temperature=None, max_tokens=None, **kwargs):
        self.calls.append(list(messages))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            text = self.replies.pop(0) if self.replies else f"reply {len(self.calls)}"
            return LLMResponse(content=text, model=self.model)
        finally:
            self.in_flight -= 1


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def database(tmp_path):
    """Fresh SQLite database per test."""
    db = await init_database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    yield db
    await close_database()


@pytest.fixture
def user_storage(database):
    return init_user_storage(database)


@pytest.fixture
def chat_storage(database):
    return init_chat_storage(database)


@pytest.fixture
def fake_provider():
    return FakeLLMProvider()


@pytest.fixture
def orchestrator(chat_storage, fake_provider):
    return ConversationOrchestrator(chat_storage, fake_provider)


@pytest.fixture
def client(tmp_path, monkeypatch, fake_provider):
    """API client over https so the Secure session cookie round-trips."""
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setattr(settings, "llm_api_key", None)

    from expressive_chat.core.orchestrator import get_orchestrator
    from expressive_chat.main import app

    with TestClient(app, base_url="https://testserver") as test_client:
        get_orchestrator().llm_provider = fake_provider
        yield test_client


def signup(client, email="alice@example.com", password="secret123"):
    return client.post("/api/auth/signup", json={"email": email, "password": password})


def login(client, email="alice@example.com", password="secret123"):
    return client.post("/api/auth/login", json={"email": email, "password": password})
