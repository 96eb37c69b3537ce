"""
Self-driving migration loop.

A migration moves legacy documents to the current schema one at a time.
Instead of a loop or recursion, each step posts a message to the task's
channel when it finishes, and the consumer starts the next step on
receiving it. Every step is therefore its own task: other work on the event
loop runs between steps, and cancelling the consumer stops the migration
after (or during) the current step.

Channel messages:
    Continue(remaining): migrate one more document; ``remaining`` are left
    Abort(cause): a step failed; stop and report ``cause``
    Done(): the last document was migrated
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from docrepo.errors import MigrationFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Continue:
    remaining: int


@dataclass(frozen=True)
class Abort:
    cause: BaseException
    document_id: Any = None


@dataclass(frozen=True)
class Done:
    pass


MigrationMessage = Continue | Abort | Done


class StepFailed(Exception):
    """Raised inside a step to attach the id of the document being migrated."""

    def __init__(self, document_id: Any, cause: BaseException) -> None:
        self.document_id = document_id
        self.cause = cause
        super().__init__(str(cause))


@dataclass
class MigrationTask:
    """
    Process-local state of one collection migration.

    Created when a migration starts, discarded when ``remaining`` reaches zero
    or a step fails. Nothing here is persisted: a crash leaves the
    unprocessed documents at their old version, ready for the next run.
    """

    collection: str
    model_type: type
    version: str
    query: dict[str, Any]
    remaining: int
    migrated: int = 0
    channel: asyncio.Queue[MigrationMessage] = field(default_factory=lambda: asyncio.Queue(maxsize=1))
    _step_handle: asyncio.Task | None = field(default=None, repr=False)

    def post(self, message: MigrationMessage) -> None:
        # At most one step is in flight, so the channel is always empty here.
        self.channel.put_nowait(message)

    async def run(self, step: Callable[[MigrationTask], Awaitable[None]]) -> None:
        """
        Drive the migration until Done or Abort.

        ``step`` migrates exactly one document and raises on failure.
        Raises MigrationFailure chained to the first failing step's error.
        """
        logger.info("Start to migrate %d documents of %s to %s", self.remaining, self.collection, self.version)
        self.post(Continue(self.remaining))
        try:
            while True:
                message = await self.channel.get()
                if isinstance(message, Continue):
                    self.remaining = message.remaining
                    self._step_handle = asyncio.create_task(self._step(step))
                elif isinstance(message, Abort):
                    raise MigrationFailure(
                        self.collection,
                        f"Cannot migrate '{self.collection}' to {self.version}: {message.cause}",
                        document_id=message.document_id,
                    ) from message.cause
                else:
                    logger.info("Migrated all %d documents of %s", self.migrated, self.collection)
                    return
        finally:
            await self.close()

    async def _step(self, step: Callable[[MigrationTask], Awaitable[None]]) -> None:
        try:
            await step(self)
        except StepFailed as failure:
            self.post(Abort(failure.cause, failure.document_id))
            return
        except Exception as error:
            self.post(Abort(error))
            return

        self.migrated += 1
        remaining = self.remaining - 1
        if remaining > 0:
            logger.debug("Migrated a document. There are %d documents to migrate.", remaining)
            self.post(Continue(remaining))
        else:
            self.post(Done())

    async def close(self) -> None:
        """Tear the loop down, cancelling a step still in flight."""
        handle, self._step_handle = self._step_handle, None
        if handle is not None and not handle.done():
            handle.cancel()
            try:
                await handle
            except asyncio.CancelledError:
                pass
