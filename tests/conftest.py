"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for exoscale_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from exoscale_mock import MockCloud  # noqa: E402


@pytest.fixture
def cloud() -> MockCloud:
    """Fresh in-memory Exoscale account."""
    return MockCloud()
