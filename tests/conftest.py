"""
Pytest configuration and fixtures.
"""

import os
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Set test environment before sandshell.config builds its settings
os.environ["SANDSHELL_CONFIG"] = str(Path(tempfile.mkdtemp(prefix="sandshell-test-")) / "none.yaml")
os.environ["LOG_LEVEL"] = "WARNING"

from fakes import FakeProvider  # noqa: E402
from sandshell.core.policy import IsolationPolicy  # noqa: E402


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def policy() -> IsolationPolicy:
    return IsolationPolicy()


@pytest.fixture
def lifecycle(fake_provider, policy):
    """Lifecycle manager over the fake provider."""
    from sandshell.core.lifecycle import SandboxLifecycleManager

    return SandboxLifecycleManager(fake_provider, policy)


@pytest.fixture
def test_settings():
    """Create test settings."""
    from sandshell.config import Settings

    return Settings(
        port=8081,  # Different port for testing
        host="127.0.0.1",
        log_level="WARNING",
    )


@pytest.fixture
def test_app(test_settings, fake_provider):
    from sandshell.server import create_app

    return create_app(settings=test_settings, provider=fake_provider)


@pytest.fixture
def test_client(test_app) -> TestClient:
    """Create a FastAPI test client."""
    with TestClient(test_app) as client:
        yield client
