"""Pytest configuration and shared fixtures."""

import logging
from collections.abc import Iterator

import pytest

# The airthings2mqtt testing plugin is registered via a ``pytest11``
# entry point for external consumers.  In our own suite it is disabled
# (``-p no:airthings2mqtt``) and loaded here instead, so that its import
# chain is measured by coverage.
pytest_plugins = ["airthings2mqtt.testing._plugin"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (may require external services)"
    )


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    """Save and restore root logger handlers and level.

    Anything that calls ``configure_logging()`` (directly or through
    ``Bridge.run_async``) replaces the root handlers; this keeps that
    from leaking into later tests.
    """
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    for h in root.handlers:
        if h not in original_handlers:
            h.close()
    root.handlers = original_handlers
    root.setLevel(original_level)
