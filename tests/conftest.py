"""Root conftest for test suite.

Auto-skips slow tests (long multi-instrument replays).
Run explicitly with: pytest -m slow
"""

import pytest


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless explicitly requested via -m."""
    markexpr = config.getoption("-m", default="")
    explicit_slow = "slow" in markexpr

    skip_slow = pytest.mark.skip(
        reason="slow tests skipped by default. Run with: pytest -m slow"
    )

    for item in items:
        if "slow" in item.keywords and not explicit_slow:
            item.add_marker(skip_slow)
