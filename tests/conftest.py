"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient



SQLITE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[None, None]:
    """Fresh in-memory store with every table created."""
    from stockpipe.database.connection import (
        close_sqlalchemy_engine,
        init_models,
        init_sqlalchemy_engine,
    )

    await close_sqlalchemy_engine()
    await init_sqlalchemy_engine(SQLITE_URL)
    await init_models()
    yield
    await close_sqlalchemy_engine()


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Create a test client for the API app."""
    from stockpipe.api.app import create_api_app

    app = create_api_app()
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def reset_adapters() -> Generator[None, None, None]:
    """Source adapters registered by a test never leak into the next one."""
    from stockpipe.sources.base import clear_adapters

    clear_adapters()
    yield
    clear_adapters()
