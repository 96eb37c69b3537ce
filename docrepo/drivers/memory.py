"""
In-memory store driver.

Evaluates the subset of the MongoDB query, update and aggregation language
that the repository and builders emit. Documents live in per-collection
lists, in insertion order. Every call yields to the event loop once, like a
real network round trip would.
"""

from __future__ import annotations

import asyncio
import copy
import re
from collections.abc import AsyncGenerator
from typing import Any
from uuid import uuid4

from docrepo.drivers.base import DeleteResult, Document, FindOptions, StoreDriver, UpdateResult
from docrepo.errors import DriverFailure

_TYPE_NAMES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "object": (dict,),
    "array": (list,),
    "bool": (bool,),
    "int": (int,),
    "long": (int,),
    "double": (float,),
    "number": (int, float),
}

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def _lookup(value: Any, segments: list[str]) -> list[Any]:
    """Every value reachable through the path, descending into arrays."""
    if not segments:
        return [value]
    head, rest = segments[0], segments[1:]
    if isinstance(value, dict):
        if head not in value:
            return []
        return _lookup(value[head], rest)
    if isinstance(value, list):
        if head.isdigit():
            index = int(head)
            return _lookup(value[index], rest) if index < len(value) else []
        found: list[Any] = []
        for element in value:
            if isinstance(element, dict):
                found.extend(_lookup(element, segments))
        return found
    return []


def _get(document: Document, path: str) -> Any:
    current: Any = document
    for segment in path.split("."):
        if not isinstance(current, dict) or segment not in current:
            return None
        current = current[segment]
    return current


def _set(document: Document, path: str, value: Any) -> None:
    segments = path.split(".")
    current = document
    for segment in segments[:-1]:
        if not isinstance(current.get(segment), dict):
            current[segment] = {}
        current = current[segment]
    current[segments[-1]] = value


def _unset(document: Document, path: str) -> None:
    segments = path.split(".")
    current: Any = document
    for segment in segments[:-1]:
        if not isinstance(current, dict) or segment not in current:
            return
        current = current[segment]
    if isinstance(current, dict):
        current.pop(segments[-1], None)


# ---------------------------------------------------------------------------
# Query matching
# ---------------------------------------------------------------------------


def _candidates(values: list[Any]) -> list[Any]:
    """The values themselves plus the elements of any array among them."""
    expanded: list[Any] = []
    for value in values:
        expanded.append(value)
        if isinstance(value, list):
            expanded.extend(value)
    return expanded


def _same(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _equals(values: list[Any], target: Any) -> bool:
    if target is None and not values:
        return True
    return any(_same(candidate, target) for candidate in _candidates(values))


def _comparable(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return True
    return isinstance(left, str) and isinstance(right, str)


def _compare(values: list[Any], op: str, target: Any) -> bool:
    for candidate in _candidates(values):
        if not _comparable(candidate, target):
            continue
        if op == "$gt" and candidate > target:
            return True
        if op == "$gte" and candidate >= target:
            return True
        if op == "$lt" and candidate < target:
            return True
        if op == "$lte" and candidate <= target:
            return True
    return False


def _regex_matches(values: list[Any], pattern: Any, options: str) -> bool:
    flags = 0
    for option in options:
        flags |= _REGEX_FLAGS.get(option, 0)
    compiled = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, flags)
    return any(isinstance(c, str) and compiled.search(c) is not None for c in _candidates(values))


def _has_type(values: list[Any], type_name: Any) -> bool:
    if type_name == "null":
        return any(v is None for v in values)
    types = _TYPE_NAMES.get(type_name)
    if types is None:
        raise DriverFailure(f"Unsupported $type '{type_name}'")
    for candidate in _candidates(values):
        if isinstance(candidate, bool) and bool not in types:
            continue
        if isinstance(candidate, types):
            return True
    return False


def _is_operator_document(condition: Any) -> bool:
    return isinstance(condition, dict) and bool(condition) and all(k.startswith("$") for k in condition)


def _elem_match(values: list[Any], condition: Document) -> bool:
    for value in values:
        if not isinstance(value, list):
            continue
        for element in value:
            if _is_operator_document(condition):
                if _match_condition([element], condition):
                    return True
            elif isinstance(element, dict) and match_query(element, condition):
                return True
    return False


def _match_operator(values: list[Any], op: str, arg: Any, condition: Document) -> bool:
    if op == "$eq":
        return _equals(values, arg)
    if op == "$ne":
        return not _equals(values, arg)
    if op in ("$gt", "$gte", "$lt", "$lte"):
        return _compare(values, op, arg)
    if op == "$in":
        return any(_equals(values, item) for item in arg)
    if op == "$nin":
        return not any(_equals(values, item) for item in arg)
    if op == "$exists":
        return bool(values) == bool(arg)
    if op == "$type":
        return _has_type(values, arg)
    if op == "$not":
        return not _match_condition(values, arg)
    if op == "$regex":
        return _regex_matches(values, arg, condition.get("$options", ""))
    if op == "$options":
        return True
    if op == "$size":
        return any(isinstance(v, list) and len(v) == arg for v in values)
    if op == "$elemMatch":
        return _elem_match(values, arg)
    if op == "$all":
        for item in arg:
            if isinstance(item, dict) and "$elemMatch" in item:
                if not _elem_match(values, item["$elemMatch"]):
                    return False
            elif not _equals(values, item):
                return False
        return True
    raise DriverFailure(f"Unsupported query operator '{op}'")


def _match_condition(values: list[Any], condition: Any) -> bool:
    if isinstance(condition, re.Pattern):
        return _regex_matches(values, condition, "")
    if _is_operator_document(condition):
        return all(_match_operator(values, op, arg, condition) for op, arg in condition.items())
    return _equals(values, condition)


def match_query(document: Document, query: Document | None) -> bool:
    """True if the document satisfies every clause of the filter."""
    for key, condition in (query or {}).items():
        if key == "$or":
            if not any(match_query(document, clause) for clause in condition):
                return False
        elif key == "$and":
            if not all(match_query(document, clause) for clause in condition):
                return False
        elif key == "$nor":
            if any(match_query(document, clause) for clause in condition):
                return False
        elif key.startswith("$"):
            raise DriverFailure(f"Unsupported top-level operator '{key}'")
        elif not _match_condition(_lookup(document, key.split(".")), condition):
            return False
    return True


# ---------------------------------------------------------------------------
# Sorting and projection
# ---------------------------------------------------------------------------


def _sort_key(value: Any) -> tuple:
    # BSON comparison order: null < numbers < strings < objects < arrays < booleans
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (5, value)
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, dict):
        return (3, repr(value))
    return (4, repr(value))


def sort_documents(documents: list[Document], order: dict[str, int] | None) -> list[Document]:
    ordered = list(documents)
    for field, direction in reversed(list((order or {}).items())):
        ordered.sort(key=lambda d, f=field: _sort_key(_get(d, f)), reverse=direction < 0)
    return ordered


def project(document: Document, projection: dict[str, Any] | None) -> Document:
    if not projection:
        return document
    include = {k for k, v in projection.items() if v and k != "_id"}
    if include:
        projected: Document = {}
        if projection.get("_id", True) and "_id" in document:
            projected["_id"] = document["_id"]
        for path in include:
            values = _lookup(document, path.split("."))
            if values:
                _set(projected, path, values[0])
        return projected
    projected = copy.deepcopy(document)
    for path, keep in projection.items():
        if not keep:
            _unset(projected, path)
    return projected


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------


def apply_update(document: Document, update: Document) -> Document:
    updated = copy.deepcopy(document)
    for op, fields in update.items():
        if op == "$set":
            for path, value in fields.items():
                _set(updated, path, copy.deepcopy(value))
        elif op == "$unset":
            for path in fields:
                _unset(updated, path)
        elif op == "$inc":
            for path, amount in fields.items():
                _set(updated, path, (_get(updated, path) or 0) + amount)
        else:
            raise DriverFailure(f"Unsupported update operator '{op}'")
    return updated


def _upsert_seed(query: Document) -> Document:
    """Equality clauses of a filter become the fields of an upserted document."""
    seed: Document = {}
    for key, condition in query.items():
        if key.startswith("$") or _is_operator_document(condition):
            continue
        _set(seed, key, copy.deepcopy(condition))
    return seed


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def _unwind(documents: list[Document], spec: Any) -> list[Document]:
    if isinstance(spec, str):
        spec = {"path": spec}
    path = spec["path"].removeprefix("$")
    index_field = spec.get("includeArrayIndex")
    preserve = spec.get("preserveNullAndEmptyArrays", False)
    unwound: list[Document] = []
    for document in documents:
        value = _get(document, path)
        if isinstance(value, list) and value:
            elements = list(enumerate(value))
        elif value is not None and not isinstance(value, list):
            elements = [(None, value)]
        elif preserve:
            elements = [(None, None)]
        else:
            continue
        for index, element in elements:
            expanded = copy.deepcopy(document)
            if element is None:
                _unset(expanded, path)
            else:
                _set(expanded, path, copy.deepcopy(element))
            if index_field:
                expanded[index_field] = index
            unwound.append(expanded)
    return unwound


def run_pipeline(documents: list[Document], pipeline: list[Document]) -> list[Document]:
    current = [copy.deepcopy(d) for d in documents]
    for stage in pipeline:
        if len(stage) != 1:
            raise DriverFailure(f"A pipeline stage must have exactly one operator: {stage}")
        op, spec = next(iter(stage.items()))
        if op == "$match":
            current = [d for d in current if match_query(d, spec)]
        elif op == "$unwind":
            current = _unwind(current, spec)
        elif op == "$sort":
            current = sort_documents(current, spec)
        elif op == "$skip":
            current = current[spec:]
        elif op == "$limit":
            if spec <= 0:
                raise DriverFailure("The $limit must be positive")
            current = current[:spec]
        elif op == "$count":
            current = [{spec: len(current)}] if current else []
        elif op == "$project":
            current = [project(d, spec) for d in current]
        else:
            raise DriverFailure(f"Unsupported aggregation stage '{op}'")
    return current


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


class MemoryStoreDriver(StoreDriver):
    """In-memory document store for tests and single-process use."""

    def __init__(self) -> None:
        self.collections: dict[str, list[Document]] = {}

    def _documents(self, collection: str) -> list[Document]:
        return self.collections.setdefault(collection, [])

    def _matching(self, collection: str, query: Document | None) -> list[Document]:
        return [d for d in self._documents(collection) if match_query(d, query)]

    async def count(self, collection: str, query: Document) -> int:
        await asyncio.sleep(0)
        return len(self._matching(collection, query))

    async def find(self, collection: str, query: Document, options: FindOptions | None = None) -> list[Document]:
        await asyncio.sleep(0)
        options = options or FindOptions()
        found = sort_documents(self._matching(collection, query), options.sort)
        if options.skip:
            found = found[options.skip :]
        if options.limit:
            found = found[: options.limit]
        return [project(copy.deepcopy(d), options.projection) for d in found]

    async def find_one(
        self, collection: str, query: Document, projection: dict[str, Any] | None = None
    ) -> Document | None:
        await asyncio.sleep(0)
        for document in self._documents(collection):
            if match_query(document, query):
                return project(copy.deepcopy(document), projection)
        return None

    async def insert(self, collection: str, document: Document) -> Any:
        await asyncio.sleep(0)
        stored = copy.deepcopy(document)
        if stored.get("_id") is None:
            stored["_id"] = uuid4().hex
        documents = self._documents(collection)
        if any(d["_id"] == stored["_id"] for d in documents):
            raise DriverFailure(f"Duplicate key '{stored['_id']}' in '{collection}'")
        documents.append(stored)
        return stored["_id"]

    async def update(
        self,
        collection: str,
        query: Document,
        update: Document,
        *,
        multi: bool = False,
        upsert: bool = False,
    ) -> UpdateResult:
        await asyncio.sleep(0)
        documents = self._documents(collection)
        matched = 0
        modified = 0
        for position, document in enumerate(documents):
            if not match_query(document, query):
                continue
            matched += 1
            updated = apply_update(document, update)
            if updated != document:
                documents[position] = updated
                modified += 1
            if not multi:
                break

        if matched == 0 and upsert:
            created = apply_update(_upsert_seed(query), update)
            if created.get("_id") is None:
                created["_id"] = uuid4().hex
            documents.append(created)
            return UpdateResult(matched_count=0, modified_count=0, upserted_id=created["_id"])

        return UpdateResult(matched_count=matched, modified_count=modified)

    async def remove_document(self, collection: str, query: Document) -> DeleteResult:
        await asyncio.sleep(0)
        documents = self._documents(collection)
        for position, document in enumerate(documents):
            if match_query(document, query):
                del documents[position]
                return DeleteResult(removed_count=1)
        return DeleteResult(removed_count=0)

    async def remove_documents(self, collection: str, query: Document) -> DeleteResult:
        await asyncio.sleep(0)
        documents = self._documents(collection)
        kept = [d for d in documents if not match_query(d, query)]
        removed = len(documents) - len(kept)
        self.collections[collection] = kept
        return DeleteResult(removed_count=removed)

    async def aggregate(self, collection: str, pipeline: list[Document]) -> AsyncGenerator[Document, None]:
        await asyncio.sleep(0)
        for document in run_pipeline(self._documents(collection), pipeline):
            yield document
