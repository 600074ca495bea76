"""
Scheduled/periodic tasks.
"""

import asyncio

import structlog
from celery import shared_task
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gatehouse.services.tokens import TokenService

logger = structlog.get_logger(__name__)


async def purge_expired(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """Delete every token past its expiry. Safe alongside live traffic."""
    async with session_factory() as session:
        purged = await TokenService(session).purge_expired()
        await session.commit()
    return purged


async def _purge_with_default_engine() -> int:
    from gatehouse.models.database import async_session_factory, engine

    try:
        return await purge_expired(async_session_factory)
    finally:
        # Each task run gets its own event loop; pooled connections must not outlive it
        await engine.dispose()


@shared_task
def purge_expired_tokens():
    """Clean up expired access tokens."""
    logger.info("Running token purge")
    purged = asyncio.run(_purge_with_default_engine())
    return {"status": "completed", "purged": purged}
