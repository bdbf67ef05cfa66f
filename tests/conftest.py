"""
Shared pytest fixtures for the loadgate test suite.

Fixtures hand out fresh collectors, fake APIs and small run
configurations so every test starts from a clean slate.  Nothing here
opens a socket; the integration suite adds its own live stub server.

Key Concepts Demonstrated:
- Factory fixtures for configurable test objects
- In-memory fakes instead of network calls in unit tests
- Faker for realistic, non-colliding test identities
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from faker import Faker

from loadgate.metrics import MetricsCollector
from loadgate.models import RunConfig
from shared.test_helpers import FakeAuthApi, make_config

fake = Faker()


# -----------------------------------------------------------------------------
# Metrics & Configuration Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def collector() -> MetricsCollector:
    """Provide an empty metrics collector."""
    return MetricsCollector()


@pytest.fixture
def config_factory() -> Callable[..., RunConfig]:
    """
    Factory fixture for small, fast run configurations.

    Example:
        def test_something(config_factory):
            config = config_factory(vus=4, duration=0.3)
    """
    def _create(**overrides: Any) -> RunConfig:
        return make_config(**overrides)

    return _create


# -----------------------------------------------------------------------------
# Fake API Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def fake_api() -> FakeAuthApi:
    """Provide an in-memory register/login/users API."""
    return FakeAuthApi()


@pytest.fixture
def credentials() -> dict[str, str]:
    """Provide a unique, pre-provisioned email/password pair."""
    return {"email": fake.unique.email(), "password": fake.password(length=12)}
