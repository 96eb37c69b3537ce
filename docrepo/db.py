"""
Document store client pool.

All production database access goes through the driver returned by
get_driver(). Never create a motor client outside this module.
"""

from __future__ import annotations

import logging

from motor.motor_asyncio import AsyncIOMotorClient

from docrepo.config import settings
from docrepo.drivers.motor_driver import MotorStoreDriver

logger = logging.getLogger(__name__)

client: AsyncIOMotorClient | None = None


async def init_client() -> None:
    """
    Initialize the client pool.
    Called once at application startup.
    """
    global client
    if not settings.MONGODB_URL:
        raise RuntimeError("MONGODB_URL environment variable is required")

    client = AsyncIOMotorClient(
        settings.MONGODB_URL,
        minPoolSize=settings.MONGODB_MIN_POOL_SIZE,
        maxPoolSize=settings.MONGODB_MAX_POOL_SIZE,
        serverSelectionTimeoutMS=settings.MONGODB_TIMEOUT_MS,
    )
    logger.info("Document store pool initialized for database %s", settings.MONGODB_DATABASE)


async def close_client() -> None:
    """
    Close the client pool.
    Called at application shutdown.
    """
    global client
    if client is not None:
        client.close()
        client = None
        logger.info("Document store pool closed")


def get_driver() -> MotorStoreDriver:
    """
    Driver bound to the configured database.

    Usage:
        driver = db.get_driver()
        total = await driver.count("users", {})
    """
    if client is None:
        raise RuntimeError("Document store pool not initialized. Call init_client() first.")

    return MotorStoreDriver(client[settings.MONGODB_DATABASE])
