"""Tests for AggregationBuilder."""

from __future__ import annotations

from docrepo.aggregation import AggregationBuilder, split_element_path


def test_split_element_path():
    assert split_element_path("groups . members") == ["groups", "members"]
    assert split_element_path("friends") == ["friends"]
    assert split_element_path("  ") == []
    assert split_element_path(None) == []


def test_unwind_path_emits_one_stage_per_segment():
    pipeline = AggregationBuilder().unwind("groups.members").build()

    assert pipeline == [
        {"$unwind": {"path": "$groups", "includeArrayIndex": "groupsIndex"}},
        {"$unwind": {"path": "$groups.members", "includeArrayIndex": "membersIndex"}},
    ]


def test_match_skips_empty_query():
    assert AggregationBuilder().match({}).match(None).build() == []
    assert AggregationBuilder().match({"a": 1}).build() == [{"$match": {"a": 1}}]


def test_sort_orders_skip_then_limit():
    pipeline = AggregationBuilder().unwind("friends").match({"_id": "u1"}).sort({"friends.weight": -1}, 5, 10).build()

    assert [next(iter(stage)) for stage in pipeline] == ["$unwind", "$match", "$sort", "$skip", "$limit"]
    assert pipeline[-2:] == [{"$skip": 5}, {"$limit": 10}]


def test_sort_without_order_or_offset():
    assert AggregationBuilder().sort(None, 0, 3).build() == [{"$limit": 3}]


def test_count():
    assert AggregationBuilder().unwind("friends").count().build()[-1] == {"$count": "total"}


def test_build_returns_a_copy():
    builder = AggregationBuilder().match({"a": 1})
    pipeline = builder.build()
    builder.count()

    assert len(pipeline) == 1
