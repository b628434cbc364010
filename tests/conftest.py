"""Shared fixtures."""

from __future__ import annotations

import pytest

from tests.mocks import OPTIONS, make_adapter


@pytest.fixture
def options():
    return dict(OPTIONS)


@pytest.fixture
def adapter_and_factory():
    return make_adapter()


@pytest.fixture(autouse=True)
def _clean_warren_env(monkeypatch):
    """Keep WARREN_* variables from the developer's shell out of tests."""
    for key in ("WARREN_ENV", "WARREN_CONFIG", "WARREN_HOST", "WARREN_PORT", "WARREN_USER", "WARREN_PASS", "WARREN_VHOST"):
        monkeypatch.delenv(key, raising=False)
