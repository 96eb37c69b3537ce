"""
Base repository over a document store.

Every stored document carries a schema tag (``schema_version``) naming the
schema version that wrote it. The tag is written on every insert and update
and is never returned to readers. Documents with an older tag are brought up
to date by migrate_collection, one document at a time.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from typing import Any

from docrepo.aggregation import AggregationBuilder, split_element_path
from docrepo.config import settings
from docrepo.drivers.base import Document, FindOptions, StoreDriver
from docrepo.errors import BadQuery, MigrationTimeout, NotAdded, NotFound
from docrepo.migration import MigrationTask, StepFailed
from docrepo.models.base import LENIENT, Model, decode_model, stale_fields
from docrepo.query_builder import Query

logger = logging.getLogger(__name__)

MapFunction = Callable[[Document], Any]


@dataclass
class _RunningMigration:
    task: asyncio.Task
    model_type: type
    waiters: int = 0


class Repository:
    """
    Persistence operations shared by every repository.

    Args:
        driver: Store driver, already connected. The repository issues calls
            through it but does not own its lifecycle.
        schema_version: Version stamped on every document this repository writes.
    """

    SCHEMA_VERSION_FIELD = "schema_version"
    CREATION_TS_FIELD = "_creationTs"

    def __init__(self, driver: StoreDriver, schema_version: str):
        self.driver = driver
        self.schema_version = schema_version
        self._migrations: dict[tuple[str, str], _RunningMigration] = {}

    # -- helpers --

    @staticmethod
    def apply_map(document: Document, map: MapFunction | None) -> Any:
        """Apply the caller's transformation, if any. Its errors propagate."""
        if map is None:
            return document
        return map(document)

    def _projection_without_schema(self, fields: dict[str, Any] | None) -> dict[str, Any]:
        """
        Projection that never returns the schema tag.

        An inclusion projection already leaves the tag out, and the store
        refuses to mix inclusion with exclusion, so only exclusion
        projections get the tag excluded explicitly.
        """
        projection = dict(fields or {})
        projection.pop(self.SCHEMA_VERSION_FIELD, None)
        if not any(value for key, value in projection.items() if key != "_id"):
            projection[self.SCHEMA_VERSION_FIELD] = False
        return projection

    def _without_schema(self, document: Document) -> Document:
        document.pop(self.SCHEMA_VERSION_FIELD, None)
        return document

    # -- read --

    async def search_page_object(
        self,
        collection: str,
        query: Query,
        options: FindOptions,
        result_key: str,
        map: MapFunction | None = None,
    ) -> dict[str, Any]:
        """
        Page of documents matching the query.

        Returns ``{"offset", "total", result_key: [...]}``. When nothing lies
        inside the window the result key is left out and no find is issued.
        """
        total = await self.driver.count(collection, query)
        offset = options.skip
        page: dict[str, Any] = {"offset": offset, "total": total}
        if total == 0 or offset >= total:
            return page

        options = replace(options, projection=self._projection_without_schema(options.projection))
        found = await self.driver.find(collection, query, options)
        page[result_key] = [self.apply_map(self._without_schema(document), map) for document in found]
        return page

    async def find_one_document(
        self,
        collection: str,
        query: Query,
        fields: dict[str, Any] | None = None,
        map: MapFunction | None = None,
    ) -> Any:
        """
        First document matching the query, without its schema tag.

        Raises:
            NotFound: no document matches
        """
        found = await self.driver.find_one(collection, query, self._projection_without_schema(fields))
        if found is None:
            raise NotFound(f"Does not exist a document that match '{query}'.")

        return self.apply_map(self._without_schema(found), map)

    # -- write --

    async def store_one_document(self, collection: str, document: Document, map: MapFunction | None = None) -> Any:
        """
        Insert a document stamped with the current schema version.

        Returns the stored document (with its ``_id``, without the tag),
        transformed by ``map`` when given. Driver errors propagate unchanged.
        """
        stored = dict(document)
        stored[self.SCHEMA_VERSION_FIELD] = self.schema_version
        document_id = await self.driver.insert(collection, stored)
        self._without_schema(stored)
        if stored.get("_id") is None:
            stored["_id"] = document_id
        return self.apply_map(stored, map)

    def _update_expression(self, document: Document) -> Document:
        """
        ``$set`` for every non-null field, ``$unset`` for every null one.

        The creation timestamp is never touched and the schema tag is always
        set to the current version.
        """
        set_fields: dict[str, Any] = {self.SCHEMA_VERSION_FIELD: self.schema_version}
        unset_fields: dict[str, str] = {}
        for name, value in document.items():
            if name in (self.CREATION_TS_FIELD, self.SCHEMA_VERSION_FIELD):
                continue
            if value is None:
                unset_fields[name] = ""
            else:
                set_fields[name] = value

        update: Document = {"$set": set_fields}
        if unset_fields:
            update["$unset"] = unset_fields
        return update

    async def update_one_document(self, collection: str, query: Query, document: Document | None) -> None:
        """
        Update the single document matching the query.

        Raises:
            NotFound: no document matches
        """
        await self.upsert_one_document(collection, query, document, upsert=False)

    async def upsert_one_document(
        self, collection: str, query: Query, document: Document | None, upsert: bool
    ) -> Any:
        """
        Update the document matching the query, inserting it when ``upsert``.

        Returns:
            The generated id when a document was inserted, None otherwise

        Raises:
            NotFound: nothing matched and ``upsert`` is False
            NotAdded: ``upsert`` is True but nothing was inserted or matched
        """
        if document is None:
            raise NotFound("Not found document to update")

        update = self._update_expression(document)
        result = await self.driver.update(collection, query, update, multi=False, upsert=upsert)
        if not upsert:
            if result.matched_count == 0:
                raise NotFound("Not found document to update")
            return None

        if result.upserted_id is not None:
            return result.upserted_id
        if result.matched_count == 1:
            return None
        raise NotAdded("Not added document")

    async def delete_one_document(self, collection: str, query: Query) -> None:
        """
        Raises:
            NotFound: no document (or, impossibly, several) removed
        """
        result = await self.driver.remove_document(collection, query)
        if result.removed_count != 1:
            raise NotFound("Not found document to delete")

    async def delete_documents(self, collection: str, query: Query) -> None:
        """
        Raises:
            NotFound: nothing removed
        """
        result = await self.driver.remove_documents(collection, query)
        if result.removed_count < 1:
            raise NotFound("Not found document to delete")

    # -- sort parameters --

    @staticmethod
    def query_param_to_sort(
        values: Iterable[str | None] | None,
        code_prefix: str,
        check_key: Callable[[str], str | None] | None = None,
    ) -> dict[str, int] | None:
        """
        Convert ``["+name", "-age", "email"]`` to ``{"name": 1, "age": -1, "email": 1}``.

        ``check_key`` maps a requested field to the stored field, or returns
        None to reject it. Returns None when there is nothing to sort by.

        Raises:
            BadQuery: with code ``{code_prefix}[index]`` for a null item, an
                empty field, a rejected field or a repeated field
        """
        if values is None:
            return None

        sort: dict[str, int] = {}
        for index, value in enumerate(values):
            code = f"{code_prefix}[{index}]"
            if value is None:
                raise BadQuery(code, "An order item can not be 'null'.")

            token = value
            value = value.strip()
            order = 1
            if value.startswith("+"):
                value = value[1:]
            elif value.startswith("-"):
                order = -1
                value = value[1:]

            if not value:
                raise BadQuery(code, f"You must to define a field in '{token}'.")

            key = value
            if check_key is not None:
                key = check_key(value)
                if key is None:
                    raise BadQuery(code, f"The field '{value}' is not valid.")

            if key in sort:
                raise BadQuery(code, f"The '{value}' that represents the field '{key}' is already defined.")
            sort[key] = order

        return sort or None

    # -- migration --

    def legacy_query(self, version: str) -> Query:
        """Documents whose schema tag is missing, not a string, or older than ``version``."""
        field = self.SCHEMA_VERSION_FIELD
        return {
            "$or": [
                {field: {"$exists": False}},
                {field: {"$not": {"$type": "string"}}},
                {field: {"$lt": version}},
            ]
        }

    async def migrate_collection(
        self,
        collection: str,
        model_type: type[Model],
        version: str,
        timeout: float | None = None,
    ) -> None:
        """
        Rewrite every legacy document of the collection through ``model_type``.

        Each document is decoded leniently, re-encoded canonically, fields
        the model no longer has are unset, and the document is saved with
        the current schema tag. Documents are processed strictly one after
        another. A second call for the same collection, version and model
        type while one is running joins it.

        Raises:
            ValueError: ``version`` is newer than the version this repository
                writes, or a migration of the same collection and version is
                running with another model type
            MigrationFailure: a document could not be read, decoded or saved;
                documents migrated before it stay migrated
            MigrationTimeout: ``timeout`` (default MIGRATION_TIMEOUT_SECONDS)
                elapsed; the migration is cancelled
        """
        # Steps stamp schema_version, so the target cannot be newer.
        if version > self.schema_version:
            raise ValueError(
                f"Cannot migrate '{collection}' to {version}: this repository writes {self.schema_version}"
            )
        if timeout is None:
            timeout = settings.MIGRATION_TIMEOUT_SECONDS

        key = (collection, version)
        running = self._migrations.get(key)
        if running is None:
            task = asyncio.create_task(self._run_migration(collection, model_type, version))
            running = _RunningMigration(task, model_type)
            self._migrations[key] = running
            task.add_done_callback(lambda _: self._forget_migration(key, running))
        elif running.model_type is not model_type:
            raise ValueError(
                f"A migration of '{collection}' to {version} is already running with {running.model_type.__name__}"
            )

        running.waiters += 1
        try:
            await asyncio.wait_for(asyncio.shield(running.task), timeout)
        except asyncio.TimeoutError as error:
            raise MigrationTimeout(
                collection, f"Migration of '{collection}' to {version} did not finish in {timeout}s"
            ) from error
        finally:
            running.waiters -= 1
            if running.waiters == 0 and not running.task.done():
                running.task.cancel()
                self._forget_migration(key, running)

    def _forget_migration(self, key: tuple[str, str], running: _RunningMigration) -> None:
        if self._migrations.get(key) is running:
            del self._migrations[key]

    async def _run_migration(self, collection: str, model_type: type[Model], version: str) -> None:
        query = self.legacy_query(version)
        total = await self.driver.count(collection, query)
        if total == 0:
            logger.debug("Nothing to migrate on %s for version %s", collection, version)
            return

        task = MigrationTask(collection=collection, model_type=model_type, version=version, query=query, remaining=total)
        await task.run(self._migrate_one_document)

    async def _migrate_one_document(self, task: MigrationTask) -> None:
        """Migrate the first legacy document found. Raises on any failure."""
        try:
            found = await self.find_one_document(task.collection, task.query)
        except Exception:
            logger.exception("Cannot find document to migrate on %s", task.collection)
            raise

        document_id = found.get("_id")
        try:
            value = decode_model(found, task.model_type, LENIENT)
            legacy = {k: v for k, v in found.items() if k != "_id"}
            canonical = value.to_document()
            canonical.pop("_id", None)
            canonical.update(stale_fields(legacy, canonical))
            await self.update_one_document(task.collection, {"_id": document_id}, canonical)
        except Exception as error:
            logger.error("Cannot migrate %s of %s: %s", document_id, task.collection, error)
            raise StepFailed(document_id, error) from error

    def update_for_schema_version(self, version: str) -> Document:
        return {"$set": {self.SCHEMA_VERSION_FIELD: version}}

    async def migrate_schema_version_on_collection_to(self, version: str, collection: str) -> None:
        """Bump the tag of every legacy document in one bulk update, without rewriting content."""
        await self.update_collection(collection, self.legacy_query(version), self.update_for_schema_version(version))

    async def update_schema_version_on_collection(self, collection: str) -> None:
        await self.migrate_schema_version_on_collection_to(self.schema_version, collection)

    async def update_collection(self, collection: str, query: Query, update: Document) -> None:
        """Apply an update to every matching document. Driver errors propagate."""
        try:
            result = await self.driver.update(collection, query, update, multi=True)
        except Exception:
            logger.exception("Cannot update the documents on '%s' with %s", collection, update)
            raise

        logger.info("Updated %d documents on '%s' with %s", result.modified_count, collection, update)

    # -- aggregation --

    async def count_aggregation(self, collection: str, element_path: list[str], query: Query) -> int:
        """Number of nested elements matching the query once the path is unwound."""
        pipeline = AggregationBuilder().unwind_path(element_path).match(query).count("total").build()
        async with aclosing(self.driver.aggregate(collection, pipeline)) as counted_stream:
            async for counted in counted_stream:
                return int(counted.get("total", 0))
        return 0

    async def aggregate_page_object(
        self,
        collection: str,
        query: Query,
        order: dict[str, int] | None,
        offset: int,
        limit: int,
        element_path: str,
    ) -> dict[str, Any]:
        """
        Page over the elements of a nested array.

        ``element_path`` is dotted (``friends`` or ``groups.members``). The page
        stores the found elements under the last path segment, and leaves that
        key out when no element is found.
        """
        segments = split_element_path(element_path)
        if not segments:
            raise ValueError("An element path is required to aggregate a page")

        total = await self.count_aggregation(collection, segments, query)
        page: dict[str, Any] = {"offset": offset, "total": total}
        if total == 0 or total < offset:
            return page

        pipeline = AggregationBuilder().unwind_path(segments).match(query).sort(order, offset, limit).build()
        elements: list[Any] = []
        async with aclosing(self.driver.aggregate(collection, pipeline)) as found:
            async for value in found:
                element: Any = value
                for segment in segments:
                    element = element.get(segment) if isinstance(element, dict) else None
                elements.append(element)

        if elements:
            page[segments[-1]] = elements
        return page
