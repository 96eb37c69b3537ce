"""
Store driver interface.

The repository never talks to a database directly. It issues the narrow
set of calls below, and a driver translates them for a concrete store:
MongoDB through motor in production, an in-memory store in tests.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Any

Document = dict[str, Any]


@dataclass
class FindOptions:
    """Window and shape of a ``find`` call."""

    sort: dict[str, int] | None = None
    skip: int = 0
    limit: int | None = None
    projection: dict[str, Any] | None = None


@dataclass
class UpdateResult:
    matched_count: int
    modified_count: int
    upserted_id: Any = None


@dataclass
class DeleteResult:
    removed_count: int


class StoreDriver:
    """
    Abstract document store driver.
    Implement with motor for production, or in-memory for tests.
    """

    async def count(self, collection: str, query: Document) -> int:
        """Number of documents matching the query."""
        raise NotImplementedError

    async def find(self, collection: str, query: Document, options: FindOptions | None = None) -> list[Document]:
        """Documents matching the query, ordered and windowed by the options."""
        raise NotImplementedError

    async def find_one(
        self, collection: str, query: Document, projection: dict[str, Any] | None = None
    ) -> Document | None:
        """First matching document, or None."""
        raise NotImplementedError

    async def insert(self, collection: str, document: Document) -> Any:
        """Insert a document and return its identifier (generated when missing)."""
        raise NotImplementedError

    async def update(
        self,
        collection: str,
        query: Document,
        update: Document,
        *,
        multi: bool = False,
        upsert: bool = False,
    ) -> UpdateResult:
        """Apply an update expression to one (or, with ``multi``, every) matching document."""
        raise NotImplementedError

    async def remove_document(self, collection: str, query: Document) -> DeleteResult:
        """Remove the first matching document."""
        raise NotImplementedError

    async def remove_documents(self, collection: str, query: Document) -> DeleteResult:
        """Remove every matching document."""
        raise NotImplementedError

    def aggregate(self, collection: str, pipeline: list[Document]) -> AsyncGenerator[Document, None]:
        """Stream the documents emitted by an aggregation pipeline."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release any resources held by the driver."""
        pass
