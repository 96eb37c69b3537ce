"""
Pydantic models for docrepo.

All data shapes defined here. No imports from db, drivers, or repos.
"""

from docrepo.models.base import LENIENT, STRICT, DecodeOptions, Model, decode_model, stale_fields
from docrepo.models.page import Page
from docrepo.models.user import Friend, FriendsPage, User, UsersPage

__all__ = [
    # Base
    "Model",
    "DecodeOptions",
    "LENIENT",
    "STRICT",
    "decode_model",
    "stale_fields",
    # Pages
    "Page",
    # User models
    "User",
    "Friend",
    "UsersPage",
    "FriendsPage",
]
