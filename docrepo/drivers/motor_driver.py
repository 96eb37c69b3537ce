"""
MongoDB store driver built on motor.

Identifiers are generated as 24-character hex strings when a document has
none, so ids stay plain JSON strings end to end. Driver errors
(``pymongo.errors.PyMongoError``) propagate to the caller unchanged.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from docrepo.drivers.base import DeleteResult, Document, FindOptions, StoreDriver, UpdateResult


class MotorStoreDriver(StoreDriver):
    """Executes driver calls against one MongoDB database."""

    def __init__(self, database: AsyncIOMotorDatabase):
        self.database = database

    async def count(self, collection: str, query: Document) -> int:
        return await self.database[collection].count_documents(query)

    async def find(self, collection: str, query: Document, options: FindOptions | None = None) -> list[Document]:
        options = options or FindOptions()
        cursor = self.database[collection].find(query, projection=options.projection or None)
        if options.sort:
            cursor = cursor.sort(list(options.sort.items()))
        if options.skip:
            cursor = cursor.skip(options.skip)
        if options.limit:
            cursor = cursor.limit(options.limit)
        return await cursor.to_list(length=None)

    async def find_one(
        self, collection: str, query: Document, projection: dict[str, Any] | None = None
    ) -> Document | None:
        return await self.database[collection].find_one(query, projection=projection or None)

    async def insert(self, collection: str, document: Document) -> Any:
        if document.get("_id") is None:
            document = {**document, "_id": str(ObjectId())}
        result = await self.database[collection].insert_one(document)
        return result.inserted_id

    async def update(
        self,
        collection: str,
        query: Document,
        update: Document,
        *,
        multi: bool = False,
        upsert: bool = False,
    ) -> UpdateResult:
        target = self.database[collection]
        if upsert and "_id" not in query:
            update = {**update, "$setOnInsert": {"_id": str(ObjectId())}}
        if multi:
            result = await target.update_many(query, update, upsert=upsert)
        else:
            result = await target.update_one(query, update, upsert=upsert)
        return UpdateResult(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_id=result.upserted_id,
        )

    async def remove_document(self, collection: str, query: Document) -> DeleteResult:
        result = await self.database[collection].delete_one(query)
        return DeleteResult(removed_count=result.deleted_count)

    async def remove_documents(self, collection: str, query: Document) -> DeleteResult:
        result = await self.database[collection].delete_many(query)
        return DeleteResult(removed_count=result.deleted_count)

    async def aggregate(self, collection: str, pipeline: list[Document]) -> AsyncGenerator[Document, None]:
        cursor = self.database[collection].aggregate(pipeline)
        try:
            async for document in cursor:
                yield document
        finally:
            await cursor.close()

    async def close(self) -> None:
        self.database.client.close()
