"""
Store drivers.

The repository layer depends only on StoreDriver. MemoryStoreDriver is
importable without a database; MotorStoreDriver needs motor installed.
"""

from docrepo.drivers.base import DeleteResult, Document, FindOptions, StoreDriver, UpdateResult
from docrepo.drivers.memory import MemoryStoreDriver

__all__ = [
    "StoreDriver",
    "MemoryStoreDriver",
    "Document",
    "FindOptions",
    "UpdateResult",
    "DeleteResult",
]
