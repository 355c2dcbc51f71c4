import asyncio

import pytest

from src.core.errors import ConfigurationError
from src.integ.config import IntegConfig
from src.integ.fixtures import BotTestSession, PollTestsState


@pytest.fixture(scope="session")
def integ_config():
    try:
        return IntegConfig.from_env()
    except ConfigurationError as e:
        pytest.skip(f"Live tests need a configured bot: {e}")


@pytest.fixture(scope="session")
def bot_session(integ_config):
    """One session per run. Leftover updates are dropped before the first test."""
    session = BotTestSession(integ_config)
    asyncio.run(session.start())
    return session


@pytest.fixture(scope="class")
def poll_state():
    state = PollTestsState()
    yield state
    state.clear()
