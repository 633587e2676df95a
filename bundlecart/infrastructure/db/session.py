from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bundlecart.core.config import get_settings

settings = get_settings()

engine = create_async_engine(
    settings.db_async_url,
    echo=False,
    pool_pre_ping=True,
)

session_factory = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


async def init_engine() -> None:
    async with engine.connect() as connection:
        await connection.execute(text("SELECT 1"))
