"""
Fixtures for the end-to-end suite: a fresh Flask stub API per test,
served on an ephemeral local port.
"""

from __future__ import annotations

import pytest

from shared.live_stack import serve_app
from shared.stub_api import create_stub_app


@pytest.fixture
def stub_app():
    """Fresh stub application with an empty user store."""
    return create_stub_app()


@pytest.fixture
def stub_url(stub_app):
    """Serve the stub app and yield its base URL."""
    with serve_app(stub_app) as base_url:
        yield base_url
