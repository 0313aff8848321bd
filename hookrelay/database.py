from contextlib import asynccontextmanager
from typing import Any
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from hookrelay.config import settings
from hookrelay.models import Base


def get_engine_args() -> dict[str, Any]:
    args: dict[str, Any] = {
        "echo": settings.debug,
        "future": True,
        "pool_pre_ping": True,
    }

    if not settings.database_url.startswith("sqlite"):
        args["pool_recycle"] = 300

    return args


engine: AsyncEngine = create_async_engine(
    settings.database_url,
    **get_engine_args(),
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            yield session


async def init_models(bind: AsyncEngine | None = None) -> None:
    """Create missing tables. Production deployments run the Alembic migrations instead."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
