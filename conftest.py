"""
Pytest configuration for querylogs tests.

This file is automatically loaded by pytest when running from the repo root.
It registers custom markers to avoid warnings.
"""
import importlib.util
import warnings

import pytest


def pytest_configure(config):
    """Register custom markers and filter known warnings."""
    # Filter known warnings from dependencies
    warnings.filterwarnings("ignore", message=".*Pydantic serializer.*", category=UserWarning)

    # Register custom markers
    config.addinivalue_line(
        "markers", "requires_duckdb: marks tests that execute statements through DuckDB"
    )


def pytest_collection_modifyitems(config, items):
    """Skip requires_duckdb tests when the duckdb driver is not installed."""
    if importlib.util.find_spec("duckdb") is not None:
        return

    skip_duckdb = pytest.mark.skip(
        reason="duckdb not installed - install the test extra to enable driver tests"
    )
    for item in items:
        # Check for explicit marker
        if item.get_closest_marker("requires_duckdb"):
            item.add_marker(skip_duckdb)
