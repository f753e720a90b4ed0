"""
Root pytest configuration.
"""

from __future__ import annotations

import logging
from collections.abc import Generator

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line(
        "markers",
        "critical: Tests that must never fail - core functionality",
    )
    config.addinivalue_line(
        "markers",
        "integration: Tests exercising the full pipeline",
    )
    config.addinivalue_line(
        "markers",
        "property: Property-based tests (may be slow)",
    )


@pytest.fixture(autouse=True)
def reset_diagnostics_cache() -> Generator[None, None, None]:
    """Reset the cached debug flag before and after each test.

    The diagnostics module resolves the debug flag from settings on first use
    and caches it; tests toggling it must not leak state into each other.
    """
    import cwlogship.core.diagnostics as diag

    diag._debug_enabled = None
    yield
    diag._debug_enabled = None


@pytest.fixture(autouse=True)
def _restore_cwlogship_logger() -> Generator[None, None, None]:
    """Undo handler, level and propagation changes made by the CLI."""
    logger = logging.getLogger("cwlogship")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture(autouse=True)
def _clean_debug_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep an ambient DEBUG variable from switching on verbose logging."""
    monkeypatch.delenv("DEBUG", raising=False)
    monkeypatch.delenv("CWLOGSHIP_DEBUG", raising=False)
