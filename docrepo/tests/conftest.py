"""
Pytest configuration and fixtures for docrepo tests.

Behavioural tests run against the in-memory driver. Tests that need a real
MongoDB are skipped unless MONGODB_URL is set.
"""

from __future__ import annotations

import pytest

from docrepo.drivers.memory import MemoryStoreDriver
from docrepo.repos.base import Repository
from docrepo.repos.user_repo import UserRepo

SCHEMA_VERSION = "1.1"


@pytest.fixture
def driver():
    """Empty in-memory store."""
    return MemoryStoreDriver()


@pytest.fixture
def repo(driver):
    """Repository writing schema version 1.1."""
    return Repository(driver, SCHEMA_VERSION)


@pytest.fixture
def user_repo(driver):
    return UserRepo(driver, SCHEMA_VERSION)


@pytest.fixture
def legacy_users(driver):
    """Three user documents written by schema version 1.0."""
    documents = [
        {"_id": "u1", "name": "Ann", "age": 31, "nickname": "annie", "schema_version": "1.0"},
        {"_id": "u2", "name": "Bob", "age": None, "schema_version": "1.0"},
        {"_id": "u3", "name": "Cid", "age": 27, "_creationTs": 1700000000, "schema_version": "1.0"},
    ]
    driver.collections["users"] = documents
    return documents
