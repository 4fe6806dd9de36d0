"""
Pytest fixtures for the dashstage engine.

This module provides:
1. Settings isolation (testing environment, fresh cached settings)
2. Dashboard API fixtures (in-memory backend, dispatch client)
3. Session manager fixture
"""

import os
import sys

import pytest

# Add project root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dashstage.config import get_settings  # noqa: E402
from dashstage.services.dashboard_api import DashboardApiClient, InMemoryDashboardApi  # noqa: E402
from dashstage.services.session import SessionManager  # noqa: E402
from dashstage.services.widget_registry import WidgetRegistry  # noqa: E402


@pytest.fixture(autouse=True)
def testing_settings(monkeypatch):
    """Run every test against default settings in the testing environment."""
    for key in list(os.environ):
        if key.startswith("DASHSTAGE_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("DASHSTAGE_ENVIRONMENT", "testing")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def api() -> InMemoryDashboardApi:
    return InMemoryDashboardApi()


@pytest.fixture
def client(api) -> DashboardApiClient:
    return DashboardApiClient(api, app_id="test-app")


@pytest.fixture
def registry() -> WidgetRegistry:
    return WidgetRegistry()


@pytest.fixture
def events() -> list:
    """Collects every ApiResult forwarded by the session."""
    return []


@pytest.fixture
def session(client, registry, events) -> SessionManager:
    return SessionManager(client, registry=registry, on_event=events.append)
