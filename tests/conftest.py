"""Test configuration and fixtures for the grant engine.

Every test gets its own settings, in-memory strategy and capability registry,
so handler overrides made in one test never leak into another.
"""

from collections.abc import Generator

import pytest

from grant_core.core.auth.oauth2 import CapabilityRegistry
from grant_core.core.config import Settings, clear_settings_cache
from grant_core.strategies import InMemoryStrategy
from tests.fixtures.oauth2_data import (
    AUDIENCE,
    CLIENTS,
    ISSUER,
    PASSWORD,
    USER_ID,
    USERNAME,
)


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Generator[None, None, None]:
    """Drop cached settings between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Engine settings for tests."""
    return Settings(issuer=ISSUER, audience=AUDIENCE)


@pytest.fixture
def strategy(settings: Settings) -> InMemoryStrategy:
    """In-memory strategy preloaded with two clients and one user."""
    strategy = InMemoryStrategy(settings, clients=CLIENTS)
    strategy.add_user(USERNAME, PASSWORD, USER_ID)
    return strategy


@pytest.fixture
def registry(strategy: InMemoryStrategy) -> CapabilityRegistry:
    """Registry with every capability of the in-memory strategy."""
    return strategy.register(CapabilityRegistry())
