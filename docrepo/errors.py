"""
Errors raised by the persistence layer.

Every failure reaches the immediate caller as one of these (or as the
unchanged error of the underlying driver). Nothing here is retried.
"""

from __future__ import annotations

from typing import Any


class PersistenceError(Exception):
    """Base class for all persistence errors."""

    pass


class NotFound(PersistenceError):
    """No document matched where exactly one (or at least one) was required."""

    pass


class NotAdded(PersistenceError):
    """An upsert neither inserted a document nor matched exactly one."""

    pass


class BadQuery(PersistenceError):
    """
    A query parameter supplied by a caller is malformed.

    The code identifies the offending item, e.g. ``order[2]``.
    """

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class MigrationFailure(PersistenceError):
    """
    A schema migration stopped before every legacy document was migrated.

    The original error is chained as ``__cause__``. Documents migrated
    before the failure keep their new schema tag.
    """

    def __init__(self, collection: str, message: str, document_id: Any = None) -> None:
        self.collection = collection
        self.document_id = document_id
        super().__init__(message)


class MigrationTimeout(MigrationFailure):
    """A migration did not finish within its deadline."""

    pass


class DriverFailure(PersistenceError):
    """The store driver could not execute a request."""

    pass
