"""
Fluent builder for document store filters.

Turns high-level filter intents (text search, ranges, existence, array
membership) into a filter document the store driver understands. Values
wrapped in slashes, like ``/^jo/``, are read as case-insensitive regular
expressions; anything else is an exact match.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable
from typing import Any

Query = dict[str, Any]


def contains_pattern(value: str) -> bool:
    """True when the value is written as ``/pattern/``."""
    return len(value) > 1 and value.startswith("/") and value.endswith("/")


def extract_pattern(value: str) -> str:
    return value[1:-1]


def regex(pattern: str) -> dict[str, str]:
    """Case-insensitive regex condition."""
    return {"$regex": pattern, "$options": "i"}


def eq_or_regex(value: str) -> dict[str, Any]:
    """Condition for one element: regex if delimited by slashes, equality otherwise."""
    if contains_pattern(value):
        return regex(extract_pattern(value))
    return {"$eq": value}


class QueryBuilder:
    """
    Accumulates field conditions and builds the filter.

    Every ``with_*`` method returns the builder itself so calls can be
    chained. A ``None`` argument means "no constraint" unless documented
    otherwise. ``build()`` returns a copy, so a filter already handed out is
    never changed by later calls.
    """

    def __init__(self) -> None:
        self._query: Query = {}

    def with_regex(self, field: str, pattern: str | Iterable[str] | None) -> QueryBuilder:
        """
        Match ``field`` against a case-insensitive regex.

        With an iterable of patterns the field is treated as an array and every
        pattern must match at least one of its elements.
        """
        if pattern is None:
            return self

        if isinstance(pattern, str):
            self._query[field] = regex(pattern)
            return self

        patterns_match = [{"$elemMatch": regex(p)} for p in pattern if p is not None]
        if patterns_match:
            self._query[field] = {"$all": patterns_match}
        return self

    def with_range(self, field: str, start: Any = None, end: Any = None) -> QueryBuilder:
        """Inclusive range; either bound may be omitted."""
        if start is None and end is None:
            return self

        restriction: dict[str, Any] = {}
        if start is not None:
            restriction["$gte"] = start
        if end is not None:
            restriction["$lte"] = end
        self._query[field] = restriction
        return self

    def with_exist(self, field: str, has_to_exist: bool | None) -> QueryBuilder:
        """
        ``True``: the field is present and not null.
        ``False``: the field is null or missing (the store treats both alike).
        """
        if has_to_exist is None:
            return self

        if has_to_exist:
            self._query[field] = {"$exists": True, "$ne": None}
        else:
            self._query[field] = None
        return self

    def with_value(self, field: str, value: Any) -> QueryBuilder:
        """Exact match. A ``None`` value requires the field to be null."""
        self._query[field] = value
        return self

    def with_eq_or_regex(self, field: str, value: str | Iterable[str] | None) -> QueryBuilder:
        """
        Exact match, or regex when the value is ``/delimited/``.

        With an iterable the field is treated as an array and every value must
        be matched by at least one element.
        """
        if value is None:
            return self

        if isinstance(value, str):
            if contains_pattern(value):
                return self.with_regex(field, extract_pattern(value))
            self._query[field] = value
            return self

        patterns_match = [{"$elemMatch": eq_or_regex(v)} for v in value if v is not None]
        if patterns_match:
            self._query[field] = {"$all": patterns_match}
        return self

    def with_element_eq_or_regex(
        self, field: str, sub_field: str, values: Iterable[str] | None
    ) -> QueryBuilder:
        """
        For an array of objects: every value must match ``sub_field`` of at
        least one element.
        """
        if values is None:
            return self

        elements_match = [{"$elemMatch": {sub_field: eq_or_regex(v)}} for v in values if v is not None]
        if elements_match:
            self._query[field] = {"$all": elements_match}
        return self

    def with_no_exist_null_eq_or_regex(self, field: str, value: str | None) -> QueryBuilder:
        """Like ``with_eq_or_regex``, but a ``None`` value requires the field to be null."""
        if value is not None:
            return self.with_eq_or_regex(field, value)

        self._query[field] = None
        return self

    def build(self) -> Query:
        return copy.deepcopy(self._query)
