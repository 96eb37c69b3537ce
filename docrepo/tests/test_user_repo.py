"""Tests for UserRepo."""

from __future__ import annotations

import pytest

from docrepo.errors import BadQuery, NotFound
from docrepo.models.user import Friend, User

pytestmark = pytest.mark.asyncio(loop_scope="session")


async def _store(user_repo, *users):
    return [await user_repo.store_user(user) for user in users]


async def test_store_and_search_user(user_repo, driver):
    stored = await user_repo.store_user(User(name="Ann", age=31))

    assert stored.id is not None
    assert stored.creation_ts is not None
    assert stored.last_update_ts == stored.creation_ts
    assert await user_repo.search_user(stored.id) == stored
    assert driver.collections["users"][0]["schema_version"] == "1.1"


async def test_store_user_keeps_given_id(user_repo):
    stored = await user_repo.store_user(User(id="u1", name="Ann"))

    assert stored.id == "u1"


async def test_search_missing_user(user_repo):
    with pytest.raises(NotFound):
        await user_repo.search_user("nobody")


async def test_update_user(user_repo, driver):
    (stored,) = await _store(user_repo, User(id="u1", name="Ann", email="ann@example.com", creation_ts=10))

    await user_repo.update_user(User(id="u1", name="Annie", age=32))

    updated = await user_repo.search_user("u1")
    assert updated.name == "Annie"
    assert updated.age == 32
    assert updated.email is None
    assert updated.creation_ts == 10
    assert "email" not in driver.collections["users"][0]


async def test_update_unknown_user(user_repo):
    with pytest.raises(NotFound):
        await user_repo.update_user(User(id="nobody"))
    with pytest.raises(NotFound):
        await user_repo.update_user(User(name="no id"))


async def test_delete_user(user_repo):
    await _store(user_repo, User(id="u1"))

    await user_repo.delete_user("u1")

    with pytest.raises(NotFound):
        await user_repo.delete_user("u1")


async def test_retrieve_users_page(user_repo):
    await _store(user_repo, User(id="u1", age=30), User(id="u2", age=20), User(id="u3", age=40))

    page = await user_repo.retrieve_users_page(offset=1, limit=1, order=["-age"])

    assert page.offset == 1
    assert page.total == 3
    assert [user.id for user in page.users] == ["u1"]


async def test_retrieve_users_page_past_the_end(user_repo):
    await _store(user_repo, User(id="u1"))

    page = await user_repo.retrieve_users_page(offset=1)

    assert page.total == 1
    assert page.users is None


async def test_retrieve_users_page_bad_order(user_repo):
    with pytest.raises(BadQuery) as excinfo:
        await user_repo.retrieve_users_page(order=["+name", "-password"])

    assert excinfo.value.code == "order[1]"


async def test_search_user_friends_page(user_repo):
    await _store(
        user_repo,
        User(id="u1", friends=[Friend(user_id="a", weight=1.0), Friend(user_id="b", weight=3.0)]),
        User(id="u2", friends=[Friend(user_id="c", weight=2.0)]),
        User(id="x1", friends=[Friend(user_id="d", weight=9.0)]),
    )

    page = await user_repo.search_user_friends_page("/^u/", ["-weight"], 0, 2)

    assert page.total == 3
    assert [friend.user_id for friend in page.friends] == ["b", "c"]


async def test_search_user_friends_page_exact_id(user_repo):
    await _store(user_repo, User(id="u1", friends=[Friend(user_id="a")]), User(id="u10", friends=[Friend(user_id="b")]))

    page = await user_repo.search_user_friends_page("u1")

    assert page.total == 1
    assert page.friends == [Friend(user_id="a")]


async def test_search_user_friends_page_no_match(user_repo):
    page = await user_repo.search_user_friends_page("nobody")

    assert page.total == 0
    assert page.friends is None


async def test_migrate_documents_to_current_version(user_repo, driver, legacy_users):
    await user_repo.migrate_documents_to_current_version()

    assert {d["schema_version"] for d in driver.collections["users"]} == {"1.1"}
    assert (await user_repo.search_user("u2")).age == 0
