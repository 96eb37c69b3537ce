"""
Base model and lenient decoding of stored documents.

Stored documents may have been written by an older version of a model: they
can carry fields that no longer exist, nulls where a value is now expected,
or a subtype tag that is no longer known. decode_model rebuilds a typed
value from such a document on a best-effort basis, controlled by
DecodeOptions.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

M = TypeVar("M", bound="Model")

# Upper bound on repair rounds for one document
_MAX_REPAIRS = 256

_POLYMORPHIC_ERRORS = {"union_tag_invalid", "union_tag_not_found"}


@dataclass(frozen=True)
class DecodeOptions:
    """Which kinds of mismatch decode_model tolerates instead of failing."""

    ignore_unknown_fields: bool = True
    nullable_missing_primitives: bool = True
    ignore_invalid_polymorphic_subtype: bool = True


LENIENT = DecodeOptions()
STRICT = DecodeOptions(
    ignore_unknown_fields=False,
    nullable_missing_primitives=False,
    ignore_invalid_polymorphic_subtype=False,
)


def _non_empty(value: Any) -> Any:
    """Drop None, empty strings and empty containers, recursively."""
    if isinstance(value, dict):
        cleaned = {k: _non_empty(v) for k, v in value.items()}
        return {k: v for k, v in cleaned.items() if v is not None and v != "" and v != [] and v != {}}
    if isinstance(value, list):
        return [_non_empty(v) for v in value]
    return value


class Model(BaseModel):
    """
    Base for every persisted model.

    Unknown fields are ignored on input and fields may be populated by name
    or by alias (``_id``, ``_creationTs``...).
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        """Canonical stored form: aliases as keys, empty values omitted."""
        return _non_empty(self.model_dump(mode="json", by_alias=True, exclude_none=True))

    def to_document_with_empty_values(self) -> dict[str, Any]:
        """Stored form keeping null fields, so an update can unset them."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls: type[M], data: dict[str, Any], options: DecodeOptions = LENIENT) -> M:
        return decode_model(data, cls, options)


def _known_keys(model_type: type[BaseModel]) -> set[str]:
    keys: set[str] = set()
    for name, info in model_type.model_fields.items():
        keys.add(name)
        if info.alias:
            keys.add(info.alias)
    return keys


def _remove_at(payload: Any, loc: tuple[Any, ...]) -> bool:
    """
    Remove the value addressed by a validation error location.

    Segments that do not exist in the payload (union member names, tags)
    are skipped. Returns False if nothing could be removed.
    """
    if not loc:
        return False
    node = payload
    for segment in loc[:-1]:
        if isinstance(node, dict) and segment in node:
            node = node[segment]
        elif isinstance(node, list) and isinstance(segment, int) and 0 <= segment < len(node):
            node = node[segment]
    last = loc[-1]
    if isinstance(node, dict) and last in node:
        del node[last]
        return True
    if isinstance(node, list) and isinstance(last, int) and 0 <= last < len(node):
        del node[last]
        return True
    return False


def _repairable(error: dict[str, Any], options: DecodeOptions) -> bool:
    kind = error["type"]
    if kind == "extra_forbidden":
        return options.ignore_unknown_fields
    if kind in _POLYMORPHIC_ERRORS:
        return options.ignore_invalid_polymorphic_subtype
    if error.get("input", ...) is None and kind != "missing":
        return options.nullable_missing_primitives
    return False


def decode_model(data: dict[str, Any], model_type: type[M], options: DecodeOptions = LENIENT) -> M:
    """
    Build a ``model_type`` value from a stored document.

    Raises pydantic.ValidationError for anything the options do not
    tolerate: values of the wrong type, unparsable values, missing required
    fields. The input document is never modified.
    """
    payload = copy.deepcopy(data)

    if not options.ignore_unknown_fields:
        unknown = sorted(k for k in payload if k not in _known_keys(model_type))
        if unknown:
            raise ValidationError.from_exception_data(
                model_type.__name__,
                [{"type": "extra_forbidden", "loc": (key,), "input": payload[key]} for key in unknown],
            )

    for _ in range(_MAX_REPAIRS):
        try:
            return model_type.model_validate(payload)
        except ValidationError as error:
            errors = error.errors()
            repair = next((e for e in errors if _repairable(e, options)), None)
            if repair is None or not _remove_at(payload, tuple(repair["loc"])):
                raise

    return model_type.model_validate(payload)


def stale_fields(legacy: dict[str, Any], canonical: dict[str, Any]) -> dict[str, None]:
    """Fields of the legacy document that the canonical form no longer has, as nulls."""
    return {key: None for key in legacy if key not in canonical}
