import random

import pytest

from pairs.logic.manager import GameSessionManager
from pairs.messaging.router import MessageRouter
from pairs.server.app import create_app
from pairs.server.settings import PairsServerSettings
from pairs.session.manager import SessionManager
from pairs.tests.mocks.connection import MockConnection

# Short enough to keep the suite fast, long enough to observe the resolving phase.
TEST_RESOLVE_DELAY = 0.01


@pytest.fixture
def game_manager():
    return GameSessionManager(rng=random.Random(42))


@pytest.fixture
def session_manager(game_manager):
    return SessionManager(game_manager, resolve_delay_seconds=TEST_RESOLVE_DELAY)


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager)


@pytest.fixture
def mock_connection():
    return MockConnection("p1")


@pytest.fixture
def server_settings():
    return PairsServerSettings(cors_origins=["http://localhost:5173"], log_dir=None)


@pytest.fixture
def app(server_settings, session_manager, message_router):
    return create_app(
        settings=server_settings,
        session_manager=session_manager,
        message_router=message_router,
    )
