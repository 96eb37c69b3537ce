"""Tests for the in-memory store driver."""

from __future__ import annotations

import pytest

from docrepo.drivers.base import FindOptions
from docrepo.drivers.memory import apply_update, match_query, run_pipeline
from docrepo.errors import DriverFailure

pytestmark = pytest.mark.asyncio(loop_scope="session")


@pytest.mark.parametrize(
    "document,query,expected",
    [
        ({"a": 1}, {"b": None}, True),
        ({"a": 1}, {"a": {"$exists": True, "$ne": None}}, True),
        ({"a": None}, {"a": {"$exists": True, "$ne": None}}, False),
        ({"v": "1.0"}, {"v": {"$lt": "1.1"}}, True),
        ({"v": "1.1"}, {"v": {"$lt": "1.1"}}, False),
        ({"v": 3}, {"v": {"$not": {"$type": "string"}}}, True),
        ({}, {"v": {"$not": {"$type": "string"}}}, True),
        ({"v": "x"}, {"v": {"$not": {"$type": "string"}}}, False),
        ({"tags": ["red", "blue"]}, {"tags": "red"}, True),
        ({"tags": ["red"]}, {"tags": {"$all": [{"$elemMatch": {"$regex": "^R", "$options": "i"}}]}}, True),
        ({"f": [{"w": 1}, {"w": 5}]}, {"f.w": {"$gt": 4}}, True),
        ({"a": True}, {"a": 1}, False),
        ({"a": 2}, {"$or": [{"a": 1}, {"a": 2}]}, True),
    ],
)
async def test_match_query(document, query, expected):
    assert match_query(document, query) is expected


async def test_unsupported_operator():
    with pytest.raises(DriverFailure):
        match_query({"a": 1}, {"a": {"$near": [0, 0]}})


async def test_apply_update():
    updated = apply_update({"a": 1, "b": 2}, {"$set": {"c.d": 3}, "$unset": {"b": ""}, "$inc": {"a": 4}})

    assert updated == {"a": 5, "c": {"d": 3}}


async def test_find_sorts_skips_limits_and_projects(driver):
    for name, age in [("a", 3), ("b", 1), ("c", 2), ("d", 4)]:
        await driver.insert("people", {"_id": name, "age": age, "secret": True})

    found = await driver.find(
        "people", {}, FindOptions(sort={"age": -1}, skip=1, limit=2, projection={"secret": False})
    )

    assert found == [{"_id": "a", "age": 3}, {"_id": "c", "age": 2}]


async def test_insert_generates_id_and_rejects_duplicates(driver):
    generated = await driver.insert("people", {"name": "x"})
    assert isinstance(generated, str)

    await driver.insert("people", {"_id": "p1"})
    with pytest.raises(DriverFailure):
        await driver.insert("people", {"_id": "p1"})


async def test_update_counts(driver):
    await driver.insert("people", {"_id": "p1", "age": 1})
    await driver.insert("people", {"_id": "p2", "age": 1})

    unchanged = await driver.update("people", {"_id": "p1"}, {"$set": {"age": 1}})
    assert (unchanged.matched_count, unchanged.modified_count) == (1, 0)

    many = await driver.update("people", {"age": 1}, {"$set": {"age": 2}}, multi=True)
    assert (many.matched_count, many.modified_count) == (2, 2)

    upserted = await driver.update("people", {"name": "new"}, {"$set": {"age": 9}}, upsert=True)
    assert upserted.matched_count == 0
    assert await driver.find_one("people", {"_id": upserted.upserted_id}) == {
        "_id": upserted.upserted_id,
        "name": "new",
        "age": 9,
    }


async def test_remove(driver):
    for index in range(3):
        await driver.insert("people", {"_id": f"p{index}", "group": "x"})

    assert (await driver.remove_document("people", {"group": "x"})).removed_count == 1
    assert (await driver.remove_documents("people", {"group": "x"})).removed_count == 2
    assert (await driver.remove_documents("people", {"group": "x"})).removed_count == 0


async def test_aggregate_unwind_match_count(driver):
    await driver.insert("users", {"_id": "u1", "friends": [{"userId": "a"}, {"userId": "b"}]})
    await driver.insert("users", {"_id": "u2", "friends": []})

    pipeline = [
        {"$unwind": {"path": "$friends", "includeArrayIndex": "friendsIndex"}},
        {"$match": {"friends.userId": {"$regex": "b"}}},
    ]
    found = [document async for document in driver.aggregate("users", pipeline)]

    assert found == [{"_id": "u1", "friends": {"userId": "b"}, "friendsIndex": 1}]
    assert [d async for d in driver.aggregate("users", pipeline + [{"$count": "total"}])] == [{"total": 1}]


async def test_count_stage_on_empty_input_emits_nothing():
    assert run_pipeline([], [{"$count": "total"}]) == []


async def test_limit_must_be_positive():
    with pytest.raises(DriverFailure):
        run_pipeline([{"a": 1}], [{"$limit": 0}])
