"""User models stored in the users collection."""

from __future__ import annotations

from pydantic import Field

from docrepo.models.base import Model
from docrepo.models.page import Page


class Friend(Model):
    """A relationship from one user to another."""

    user_id: str | None = Field(default=None, alias="userId")
    relation: str | None = None
    weight: float | None = None


class User(Model):
    """A user document. The store identifier is exposed as ``id``."""

    id: str | None = Field(default=None, alias="_id")
    name: str | None = None
    email: str | None = None
    age: int = 0
    active: bool = True
    tags: list[str] = Field(default_factory=list)
    friends: list[Friend] = Field(default_factory=list)
    creation_ts: int | None = Field(default=None, alias="_creationTs")
    last_update_ts: int | None = Field(default=None, alias="_lastUpdateTs")


class UsersPage(Page):
    users: list[User] | None = None


class FriendsPage(Page):
    friends: list[Friend] | None = None
