"""
Root test configuration for all tests.

Keeps settings isolated so tests never pick up credentials or paths from the
developer's environment or ``.env`` file.
"""

import os
from collections.abc import Generator

import pytest

from animap.config import get_settings


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path) -> Generator[None, None, None]:
    """Drop ANIMAP_* variables, run from an empty directory and reset cached settings."""
    for name in list(os.environ):
        if name.startswith("ANIMAP_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
