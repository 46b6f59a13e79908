"""Root conftest for test suite.

Auto-skips integration tests that require a running PostgreSQL.
Run explicitly with: pytest tests/integration -m integration
"""

import pytest


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly requested."""
    # Check if user explicitly requested integration tests
    # via -m marker or by specifying the test path directly
    markexpr = config.getoption("-m", default="")
    explicit_integration = "integration" in markexpr

    args = config.args
    running_integration_path = any("tests/integration" in str(arg) for arg in args)

    skip_integration = pytest.mark.skip(
        reason="integration tests require PostgreSQL. "
        "Run with: pytest tests/integration -m integration"
    )

    for item in items:
        if (
            "integration" in item.keywords
            and not explicit_integration
            and not running_integration_path
        ):
            item.add_marker(skip_integration)
