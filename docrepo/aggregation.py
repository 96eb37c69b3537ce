"""
Builder for aggregation pipelines that page over nested array elements.

A dotted element path such as ``members.roles`` is unwound one segment at a
time, so each element of the innermost array becomes its own document that
can be matched, sorted and paginated.
"""

from __future__ import annotations

import re
from typing import Any

from docrepo.query_builder import Query

Pipeline = list[dict[str, Any]]

_WHITESPACE = re.compile(r"\s")


def split_element_path(element_path: str | None) -> list[str]:
    """Split ``a.b.c`` into segments, ignoring whitespace."""
    if element_path is None:
        return []
    trimmed = _WHITESPACE.sub("", element_path)
    if not trimmed:
        return []
    return trimmed.split(".")


class AggregationBuilder:
    """Appends pipeline stages in call order."""

    def __init__(self) -> None:
        self._pipeline: Pipeline = []

    def unwind(self, element_path: str | None) -> AggregationBuilder:
        return self.unwind_path(split_element_path(element_path))

    def unwind_path(self, segments: list[str] | None) -> AggregationBuilder:
        """One ``$unwind`` per segment, each keeping the element index."""
        if not segments:
            return self

        path = "$" + segments[0]
        self._pipeline.append({"$unwind": {"path": path, "includeArrayIndex": f"{segments[0]}Index"}})
        for segment in segments[1:]:
            path += "." + segment
            self._pipeline.append({"$unwind": {"path": path, "includeArrayIndex": f"{segment}Index"}})
        return self

    def match(self, query: Query | None) -> AggregationBuilder:
        if query:
            self._pipeline.append({"$match": query})
        return self

    def sort(self, order: dict[str, int] | None, offset: int, limit: int) -> AggregationBuilder:
        """Order, then skip ``offset`` elements, then keep at most ``limit``."""
        if order:
            self._pipeline.append({"$sort": order})
        if offset > 0:
            self._pipeline.append({"$skip": offset})
        self._pipeline.append({"$limit": limit})
        return self

    def count(self, field: str = "total") -> AggregationBuilder:
        self._pipeline.append({"$count": field})
        return self

    def build(self) -> Pipeline:
        return list(self._pipeline)
