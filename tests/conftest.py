import logging

import pytest
from fakes import FakeBotApi

from src.integ.ordering import (  # noqa: F401
    pytest_collection_modifyitems,
    pytest_configure,
    pytest_runtest_makereport,
    pytest_runtest_setup,
)

# Configure logging for tests
logging.basicConfig(level=logging.INFO)


@pytest.fixture
def fake_bot_api():
    """Fresh in-memory Bot API for each test."""
    return FakeBotApi()
