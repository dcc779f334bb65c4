"""
Keep-alive Server and Health Tests

File: tests/gateway/test_server.py
"""

import json

import pytest
from fastapi.testclient import TestClient

from fakes import OTHER_WEBHOOK_URL, WEBHOOK_URL, FakeConnector, ready
from mirror_relay.gateway.config import MirrorConfig
from mirror_relay.gateway.protocol import Ready
from mirror_relay.gateway.server import KEEP_ALIVE_TEXT, build_state, create_app
from mirror_relay.gateway.session import ConnectionState
from mirror_relay.helpers.log_config import mask_secrets, reset_configuration


@pytest.fixture
def config():
    return MirrorConfig(
        token="bot-secret-token",
        mirror_map=json.dumps({"C1": [WEBHOOK_URL, OTHER_WEBHOOK_URL]}),
        keep_alive=False,
    )


@pytest.fixture
def state(config, mock_client):
    state = build_state(config, connect=FakeConnector(), client=mock_client)
    yield state
    reset_configuration()


class TestBuildState:
    """Component wiring"""

    def test_components_are_wired(self, state, config):
        assert state.session.token == config.token
        assert state.session.on_message == state.relay.handle_message
        assert state.session.metrics is state.metrics
        assert len(state.relay.routing) == 1

    def test_secrets_are_registered(self, state):
        assert mask_secrets("bot-secret-token") == "***"
        assert mask_secrets(WEBHOOK_URL).endswith("/***")
        assert "token-two" not in mask_secrets(OTHER_WEBHOOK_URL)

    def test_ready_builds_loop_prevention(self, state):
        state.session.on_ready(Ready.from_payload(ready()["d"]))

        assert state.relay.identity_cache.built
        assert "111111111111111111" in state.relay.identity_cache
        assert state.relay.filters.self_id == "42"


class TestKeepAliveApp:
    """HTTP endpoint tests"""

    def test_keep_alive_text(self, state):
        client = TestClient(create_app(state))
        resp = client.get("/")

        assert resp.status_code == 200
        assert resp.text == KEEP_ALIVE_TEXT

    def test_health_disconnected(self, state):
        client = TestClient(create_app(state))
        data = client.get("/api/health").json()

        assert data["status"] == "unhealthy"
        gateway = next(c for c in data["checks"] if c["name"] == "gateway")
        assert gateway["message"] == "Not connected"
        assert data["session"]["connection_state"] == "disconnected"

    def test_health_ready(self, state):
        state.session.connection_state = ConnectionState.READY
        client = TestClient(create_app(state))

        data = client.get("/api/health").json()

        assert data["status"] == "healthy"

    def test_health_degraded_while_connecting(self, state):
        state.session.connection_state = ConnectionState.AUTHENTICATING
        client = TestClient(create_app(state))

        assert client.get("/api/health").json()["status"] == "degraded"

    def test_health_failing_destination(self, state):
        state.session.connection_state = ConnectionState.READY
        label = state.relay.routing.all_destinations()[0].label
        state.metrics.record_error(label, "HTTP 404")
        client = TestClient(create_app(state))

        data = client.get("/api/health").json()

        assert data["status"] == "degraded"
        check = next(c for c in data["checks"] if c["name"] == f"destination:{label}")
        assert check["message"] == "HTTP 404"
        assert "token-one" not in json.dumps(data)

    def test_health_unhealthy_when_shutting_down(self, state):
        state.session.connection_state = ConnectionState.READY
        state.is_shutting_down = True
        client = TestClient(create_app(state))

        assert client.get("/api/health").json()["status"] == "unhealthy"

    def test_empty_routing_is_degraded(self, mock_client):
        state = build_state(MirrorConfig(token="x"), connect=FakeConnector(), client=mock_client)
        state.session.connection_state = ConnectionState.READY
        client = TestClient(create_app(state))

        data = client.get("/api/health").json()

        assert data["status"] == "degraded"
        reset_configuration()

    def test_metrics(self, state):
        state.metrics.record_message_received()
        client = TestClient(create_app(state))

        data = client.get("/api/metrics").json()

        assert data["metrics"]["gateway"]["messages_received"] == 1
