"""Async SQLAlchemy engine and per-request transactions.

Ledger writes lock balance rows with ``SELECT ... FOR UPDATE``; the server-side
``lock_timeout`` bounds how long a request waits behind a concurrent writer.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from leave_ledger.config import settings

logger = logging.getLogger(__name__)


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
    connect_args={
        "server_settings": {
            "application_name": "leave-ledger",
            "lock_timeout": str(settings.DB_LOCK_TIMEOUT_MS),
        },
    },
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for every ledger table."""


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session and one transaction per request.

    Commits when the endpoint returns; any exception rolls back every
    ledger mutation, audit entry and status change made during the request.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as exc:
            await session.rollback()
            logger.debug("rolled back request transaction: %s", type(exc).__name__)
            raise
