"""Pytest configuration and shared fixtures.

No live database or provider is needed: endpoints run against the ASGI app
with dependencies overridden, and channel calls are mocked per test.
"""

import os
from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set testing mode BEFORE importing app so the limiter starts disabled
os.environ["TESTING"] = "true"

from src.config import settings

# Override settings for testing
settings.testing = True

from src.main import app


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
