"""Shared fixtures for animap unit tests."""

from collections.abc import Generator

import pytest

from animap.cache.store import CacheStore


@pytest.fixture
def store(tmp_path) -> Generator[CacheStore, None, None]:
    """An open cache store backed by a temporary database file."""
    cache = CacheStore(tmp_path / "animap.db").open()
    yield cache
    cache.close()
