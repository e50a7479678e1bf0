"""Pytest configuration for all tests."""

import os

import pytest

from src.bridge.config import BridgeSettings


def make_settings(**overrides) -> BridgeSettings:
    values = {
        "github_token": "ghp_test_token",
        "circleci_token": "circle_test_token",
    }
    values.update(overrides)
    return BridgeSettings(**values)


@pytest.fixture
def settings() -> BridgeSettings:
    """Bridge settings with the wp-calypso → wp-desktop defaults."""
    return make_settings()


@pytest.fixture
def settings_factory():
    """Build settings with selected fields overridden."""
    return make_settings


@pytest.fixture(autouse=True)
def _clear_bridge_env(monkeypatch):
    """Keep BRIDGE_* variables from the developer's shell out of tests."""
    for name in list(os.environ):
        if name.upper().startswith("BRIDGE_"):
            monkeypatch.delenv(name, raising=False)
