"""Tests for converting sort query parameters."""

from __future__ import annotations

import pytest

from docrepo.errors import BadQuery
from docrepo.repos.base import Repository

to_sort = Repository.query_param_to_sort


def test_nothing_to_sort():
    assert to_sort(None, "order") is None
    assert to_sort([], "order") is None


def test_directions_and_order_are_kept():
    sort = to_sort(["+name", "-age", "email", " -weight "], "order")

    assert list(sort.items()) == [("name", 1), ("age", -1), ("email", 1), ("weight", -1)]


def test_null_item():
    with pytest.raises(BadQuery) as excinfo:
        to_sort(["name", None], "order")

    assert excinfo.value.code == "order[1]"
    assert excinfo.value.message == "An order item can not be 'null'."


@pytest.mark.parametrize("value", ["", "+", "-", "  "])
def test_empty_field(value):
    with pytest.raises(BadQuery) as excinfo:
        to_sort([value], "order")

    assert excinfo.value.code == "order[0]"


def test_rejected_field():
    allowed = {"name": "name", "id": "_id"}

    with pytest.raises(BadQuery) as excinfo:
        to_sort(["-id", "+password"], "order", allowed.get)

    assert excinfo.value.code == "order[1]"
    assert "password" in excinfo.value.message


def test_check_key_maps_field():
    assert to_sort(["-id"], "order", {"id": "_id"}.get) == {"_id": -1}


def test_duplicate_field():
    with pytest.raises(BadQuery) as excinfo:
        to_sort(["+a", "-b", "a"], "sort")

    assert excinfo.value.code == "sort[2]"
    assert "'a'" in excinfo.value.message
    assert str(excinfo.value).startswith("sort[2]: ")


def test_duplicate_after_mapping():
    """Two parameters naming the same stored field are a duplicate."""
    mapping = {"id": "_id", "identifier": "_id"}

    with pytest.raises(BadQuery) as excinfo:
        to_sort(["id", "-identifier"], "order", mapping.get)

    assert excinfo.value.code == "order[1]"
    assert "_id" in excinfo.value.message
