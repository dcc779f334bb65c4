"""
pytest shared fixtures for Mirror Relay tests

File: tests/conftest.py
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root and the tests directory (for fakes.py) to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import WEBHOOK_URL, message_payload  # noqa: E402
from mirror_relay.gateway.protocol import MessageCreate  # noqa: E402
from mirror_relay.relay.engine import RelayEngine  # noqa: E402
from mirror_relay.relay.routing import RoutingTable  # noqa: E402
from mirror_relay.relay.webhook import WebhookProfile  # noqa: E402


@pytest.fixture
def make_message():
    """Build a MessageCreate from payload overrides"""
    def factory(**overrides) -> MessageCreate:
        return MessageCreate.from_payload(message_payload(**overrides))
    return factory


@pytest.fixture
def mock_client():
    """Mock WebhookClient"""
    client = MagicMock()
    client.execute = AsyncMock(return_value=None)
    client.fetch_profile = AsyncMock(return_value=WebhookProfile(name="Relay Bot"))
    client.close = AsyncMock()
    return client


@pytest.fixture
def make_engine(mock_client):
    """Build a RelayEngine over a routing map with the mock client"""
    def factory(routes=None, **kwargs) -> RelayEngine:
        routing = RoutingTable.from_config(routes if routes is not None else {"C1": [WEBHOOK_URL]})
        return RelayEngine(routing=routing, client=mock_client, **kwargs)
    return factory
