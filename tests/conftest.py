"""
Shared pytest fixtures and configuration for corekit tests.

This module provides:
- Automatic unit/integration markers based on test location
- Settings cache isolation
- Small plugin factories used across executor tests

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments:

    def test_something(make_plugin):
        plugin = make_plugin("A", on_before=...)
"""

from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Generator

import pytest
import structlog

from corekit.core.settings import get_settings


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path) or "integration" in item.name:
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Drop cached settings so env changes in one test never leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def reset_structlog() -> Generator[None, None, None]:
    """Restore structlog defaults after a test that configures logging."""
    yield
    structlog.reset_defaults()


# =============================================================================
# Plugin Factories
# =============================================================================


@pytest.fixture
def make_plugin() -> Callable[..., Any]:
    """
    Factory for duck-typed plugins.

    Usage:
        def test_something(make_plugin):
            plugin = make_plugin("A", on_before=lambda ctx: None)
    """

    def _make_plugin(plugin_name: str, **hooks: Any) -> SimpleNamespace:
        return SimpleNamespace(plugin_name=plugin_name, **hooks)

    return _make_plugin
