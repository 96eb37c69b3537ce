"""
Persistence startup and shutdown.

Startup opens the store client (unless a driver is injected), builds the
repositories, and brings every collection to the current schema version
before anything else can read it.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from docrepo import db
from docrepo.config import settings
from docrepo.drivers.base import StoreDriver
from docrepo.repos.user_repo import UserRepo

logger = logging.getLogger(__name__)


@dataclass
class Persistence:
    """Repositories sharing one driver."""

    driver: StoreDriver
    schema_version: str
    users: UserRepo


async def start_persistence(driver: StoreDriver | None = None, schema_version: str | None = None) -> Persistence:
    """
    Start the persistence layer.

    Args:
        driver: Driver to use. When None the client pool is opened and the
            configured database is used.
        schema_version: Defaults to SCHEMA_VERSION.

    Returns:
        Persistence holding every repository

    Raises:
        MigrationFailure: a collection could not be migrated; startup is aborted
    """
    owns_client = driver is None
    if owns_client:
        await db.init_client()
        driver = db.get_driver()

    version = schema_version or settings.SCHEMA_VERSION
    persistence = Persistence(driver=driver, schema_version=version, users=UserRepo(driver, version))

    try:
        await persistence.users.migrate_documents_to_current_version()
    except Exception:
        logger.exception("Cannot migrate the collections to schema version %s", version)
        if owns_client:
            await db.close_client()
        raise

    logger.info("Persistence started with schema version %s", version)
    return persistence


async def stop_persistence(persistence: Persistence | None = None) -> None:
    """
    Close the driver of a started persistence layer, then the client pool if
    one was opened.
    """
    if persistence is not None:
        await persistence.driver.close()
    await db.close_client()


@asynccontextmanager
async def persistence_lifespan(
    driver: StoreDriver | None = None, schema_version: str | None = None
) -> AsyncIterator[Persistence]:
    """
    Lifespan context manager for an application using the persistence layer.

    Usage:
        async with persistence_lifespan() as persistence:
            user = await persistence.users.search_user(user_id)
    """
    persistence = await start_persistence(driver, schema_version)
    try:
        yield persistence
    finally:
        await stop_persistence(persistence)
