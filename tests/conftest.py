"""
Pytest configuration for Cerveau tests.

This conftest ensures that tests don't modify the .env file.
"""

import pytest
from unittest.mock import patch

from fakes import FakeClock, ManualScheduler


@pytest.fixture(autouse=True)
def mock_config_save():
    """Prevent tests from modifying .env file."""
    with patch('cerveau.config.config.save'):
        yield


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def clock():
    return FakeClock()
