"""
Pytest configuration and fixtures.
"""

import json
import os
import tempfile
from typing import AsyncGenerator

# Settings are read at import time, so the environment is prepared first.
_DB_DIR = tempfile.mkdtemp(prefix="devhub-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["CHAT_API_URL"] = "http://chat-backend.test"
os.environ["GITHUB_TOKEN"] = ""
os.environ["APP_ENV"] = "development"

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from devhub.db.session import close_db, drop_db, init_db, reset_engine  # noqa: E402
from devhub.main import app  # noqa: E402


@pytest.fixture
async def db() -> AsyncGenerator[None, None]:
    """Fresh tables for one test."""
    reset_engine()
    await init_db()
    yield
    await drop_db()
    await close_db()


@pytest.fixture
async def async_client(db: None) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    app.dependency_overrides.clear()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Headers the session layer sets for a signed-in user."""
    return {"X-User-Email": "ada@example.com", "X-User-Name": "Ada Lovelace"}


@pytest.fixture
def other_headers() -> dict[str, str]:
    return {"X-User-Email": "grace@example.com", "X-User-Name": "Grace Hopper"}


@pytest.fixture
def sample_chat_id() -> str:
    return "chat_test123456"


@pytest.fixture
def sse_body():
    """Build an SSE payload from (event, data) pairs."""

    def build(*events: tuple) -> bytes:
        blocks = []
        for event, data in events:
            prefix = f"event: {event}\n" if event else ""
            blocks.append(f"{prefix}data: {json.dumps(data)}\n\n")
        return "".join(blocks).encode()

    return build
