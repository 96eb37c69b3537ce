"""Tests for the model layer and lenient decoding."""

from __future__ import annotations

from typing import Annotated, Literal

import pytest
from pydantic import Field, ValidationError

from docrepo.models import STRICT, DecodeOptions, Friend, Model, User, UsersPage, decode_model, stale_fields


class Cat(Model):
    kind: Literal["cat"] = "cat"
    lives: int = 9


class Dog(Model):
    kind: Literal["dog"] = "dog"


Pet = Annotated[Cat | Dog, Field(discriminator="kind")]


class Owner(Model):
    name: str
    pet: Pet | None = None
    pets: list[Pet] = Field(default_factory=list)


def test_to_document_uses_aliases_and_drops_empty_values():
    user = User(id="u1", name="Ann", email="", friends=[Friend(user_id="u2")], creation_ts=5)

    assert user.to_document() == {
        "_id": "u1",
        "name": "Ann",
        "age": 0,
        "active": True,
        "friends": [{"userId": "u2"}],
        "_creationTs": 5,
    }


def test_to_document_with_empty_values_keeps_nulls():
    document = User(id="u1").to_document_with_empty_values()

    assert document["name"] is None
    assert document["_lastUpdateTs"] is None


def test_lenient_decode_ignores_unknown_fields_and_nulls():
    user = decode_model(
        {"_id": "u1", "nickname": "x", "age": None, "active": None, "tags": None, "friends": [{"userId": "u2", "x": 1}]},
        User,
    )

    assert user.id == "u1"
    assert user.age == 0
    assert user.active is True
    assert user.tags == []
    assert user.friends == [Friend(user_id="u2")]


def test_lenient_decode_drops_unknown_subtypes():
    owner = decode_model({"name": "o", "pet": {"kind": "fish"}, "pets": [{"kind": "cat"}, {"kind": "fish"}]}, Owner)

    assert owner.pet is None
    assert owner.pets == [Cat()]


def test_decode_does_not_modify_input():
    data = {"_id": "u1", "age": None}
    decode_model(data, User)

    assert data == {"_id": "u1", "age": None}


def test_wrong_type_is_a_hard_failure():
    with pytest.raises(ValidationError):
        decode_model({"age": "old"}, User)


def test_missing_required_field_is_a_hard_failure():
    with pytest.raises(ValidationError):
        decode_model({"pet": {"kind": "cat"}}, Owner)


def test_strict_decode():
    with pytest.raises(ValidationError):
        decode_model({"_id": "u1", "nickname": "x"}, User, STRICT)
    with pytest.raises(ValidationError):
        decode_model({"age": None}, User, STRICT)
    with pytest.raises(ValidationError):
        decode_model({"name": "o", "pet": {"kind": "fish"}}, Owner, STRICT)


def test_options_are_independent():
    only_unknown = DecodeOptions(nullable_missing_primitives=False)

    assert decode_model({"nickname": "x"}, User, only_unknown).id is None
    with pytest.raises(ValidationError):
        decode_model({"age": None}, User, only_unknown)


def test_from_document():
    assert User.from_document({"_id": "u1", "name": "Ann"}).name == "Ann"


def test_stale_fields():
    assert stale_fields({"a": 1, "b": 2, "c": None}, {"a": 1}) == {"b": None, "c": None}
    assert stale_fields({"a": 1}, {"a": 2, "d": 3}) == {}


def test_page_without_results():
    page = UsersPage.model_validate({"offset": 3, "total": 2})

    assert page.users is None
    assert page.to_document() == {"offset": 3, "total": 2}
