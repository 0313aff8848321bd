import os
from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Force SQLite and the in-memory store for tests
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DELIVERY_STORE"] = "memory"

from hookrelay.database import init_models  # noqa: E402
from hookrelay.main import app  # noqa: E402
from hookrelay.services import Dispatcher, HandlerRegistry  # noqa: E402
from hookrelay.stores import MemoryDeliveryStore  # noqa: E402


@pytest.fixture
def memory_store():
    return MemoryDeliveryStore()


@pytest.fixture
def registry():
    return HandlerRegistry()


@pytest.fixture
def dispatcher(memory_store, registry):
    return Dispatcher(store=memory_store, registry=registry, handler_timeout=0.5)


@pytest.fixture
def client(dispatcher, memory_store):
    """Create a test client wired to a fresh store and registry."""
    with patch("hookrelay.routes.webhooks.dispatcher", dispatcher):
        with patch("hookrelay.routes.deliveries.delivery_store", memory_store):
            yield TestClient(app)


@pytest_asyncio.fixture
async def db_session_factory():
    """Session factory over a private in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_models(engine)

    session_maker = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    @asynccontextmanager
    async def session_factory():
        async with session_maker() as session:
            async with session.begin():
                yield session

    yield session_factory
    await engine.dispose()
