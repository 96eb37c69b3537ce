"""Repository for user operations."""

from __future__ import annotations

from datetime import UTC, datetime

from docrepo.drivers.base import FindOptions
from docrepo.errors import NotFound
from docrepo.models.user import FriendsPage, User, UsersPage
from docrepo.query_builder import QueryBuilder
from docrepo.repos.base import Repository

# Sort parameter -> stored field
_USER_SORT_FIELDS = {
    "id": "_id",
    "name": "name",
    "email": "email",
    "age": "age",
    "active": "active",
    "creationTs": "_creationTs",
    "lastUpdateTs": "_lastUpdateTs",
}

_FRIEND_SORT_FIELDS = {
    "userId": "friends.userId",
    "relation": "friends.relation",
    "weight": "friends.weight",
}


def _now() -> int:
    return int(datetime.now(UTC).timestamp())


class UserRepo(Repository):
    """All user-related document operations."""

    COLLECTION = "users"

    async def search_user(self, user_id: str) -> User:
        """
        Get a user by ID.

        Raises:
            NotFound: no user has that ID
        """
        return await self.find_one_document(self.COLLECTION, {"_id": user_id}, map=User.from_document)

    async def store_user(self, user: User) -> User:
        """
        Store a new user. Timestamps are set here; the ID is generated when
        the user has none.

        Returns:
            The stored user, with its ID
        """
        now = _now()
        document = user.to_document()
        document.setdefault("_creationTs", now)
        document["_lastUpdateTs"] = now
        return await self.store_one_document(self.COLLECTION, document, map=User.from_document)

    async def update_user(self, user: User) -> None:
        """
        Replace the fields of a stored user. Fields set to None are removed.

        Raises:
            NotFound: the user has no ID or is not stored
        """
        if user.id is None:
            raise NotFound("Not found document to update")

        document = user.to_document_with_empty_values()
        document.pop("_id", None)
        document["_lastUpdateTs"] = _now()
        await self.update_one_document(self.COLLECTION, {"_id": user.id}, document)

    async def delete_user(self, user_id: str) -> None:
        await self.delete_one_document(self.COLLECTION, {"_id": user_id})

    async def retrieve_users_page(self, offset: int = 0, limit: int = 10, order: list[str] | None = None) -> UsersPage:
        """
        Page through every user.

        Args:
            offset: Index of the first user to return
            limit: Maximum number of users to return
            order: Sort parameters such as ``["-age", "+name"]``

        Raises:
            BadQuery: an order item is malformed, unknown or repeated
        """
        sort = self.query_param_to_sort(order, "order", _USER_SORT_FIELDS.get)
        options = FindOptions(sort=sort, skip=offset, limit=limit)
        page = await self.search_page_object(self.COLLECTION, {}, options, "users", map=User.from_document)
        return UsersPage.model_validate(page)

    async def search_user_friends_page(
        self,
        user_id_pattern: str | None,
        order: list[str] | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> FriendsPage:
        """
        Page through the friends of the users whose ID matches the pattern.

        ``user_id_pattern`` is an exact ID or a ``/regex/``; None pages over
        the friends of every user.
        """
        query = QueryBuilder().with_eq_or_regex("_id", user_id_pattern).build()
        sort = self.query_param_to_sort(order, "order", _FRIEND_SORT_FIELDS.get)
        page = await self.aggregate_page_object(self.COLLECTION, query, sort, offset, limit, "friends")
        return FriendsPage.model_validate(page)

    async def migrate_documents_to_current_version(self) -> None:
        """Migrate every legacy user document to this repository's schema version."""
        await self.migrate_collection(self.COLLECTION, User, self.schema_version)
