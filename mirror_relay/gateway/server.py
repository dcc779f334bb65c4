"""
Mirror Relay Server

Runs the gateway session and the keep-alive HTTP endpoint on one event loop:
- Gateway session relays messages from source channels to webhooks
- FastAPI app answers keep-alive pings, health and metrics requests

File: mirror_relay/gateway/server.py
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, TYPE_CHECKING

import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from mirror_relay import __version__
from mirror_relay.helpers.log_config import register_secret
from mirror_relay.relay.engine import RelayEngine

from .config import MirrorConfig
from .health import HealthChecker
from .metrics import MetricsCollector
from .session import Connector, GatewaySession

if TYPE_CHECKING:
    from mirror_relay.relay.webhook import WebhookClient

logger = logging.getLogger("mirror.server")

KEEP_ALIVE_TEXT = "Mirror Bot is Awake!"


@dataclass
class MirrorState:
    """Relay runtime state"""
    started_at: datetime = field(default_factory=datetime.now)
    config: Optional[MirrorConfig] = None
    session: Optional[GatewaySession] = None
    relay: Optional[RelayEngine] = None
    metrics: Optional[MetricsCollector] = None
    health_checker: Optional[HealthChecker] = None
    is_shutting_down: bool = False


def build_state(
    config: MirrorConfig,
    connect: Optional[Connector] = None,
    client: Optional["WebhookClient"] = None,
) -> MirrorState:
    """Wire the session, relay engine, metrics and health checker together"""
    state = MirrorState(config=config)
    state.metrics = MetricsCollector()
    state.relay = RelayEngine.from_config(config, client=client, metrics=state.metrics)

    register_secret(config.token)
    for destination in state.relay.routing.all_destinations():
        register_secret(destination.token)

    state.session = GatewaySession(
        token=config.token,
        gateway_url=config.gateway_url,
        intents=config.intents,
        on_message=state.relay.handle_message,
        on_ready=state.relay.handle_ready,
        connect=connect,
        reconnect_base_delay=config.reconnect_base_delay,
        reconnect_max_delay=config.reconnect_max_delay,
        metrics=state.metrics,
    )
    state.health_checker = HealthChecker(state)
    return state


def create_app(state: MirrorState) -> FastAPI:
    """Create the keep-alive FastAPI application"""
    app = FastAPI(title="Mirror Relay", version=__version__)

    @app.get("/", response_class=PlainTextResponse)
    async def keep_alive():
        """Keep-alive ping"""
        return KEEP_ALIVE_TEXT

    @app.get("/api/health")
    async def health_check():
        """Health check"""
        if state.health_checker:
            status = await state.health_checker.check()
            return status.to_dict()
        return {"status": "starting"}

    @app.get("/api/metrics")
    async def get_metrics():
        """Get relay metrics"""
        if not state.metrics:
            return {"metrics": {}}
        return {"metrics": state.metrics.get_summary()}

    return app


async def serve(config: MirrorConfig, state: Optional[MirrorState] = None):
    """
    Run until the session ends

    Raises InvalidSessionError when the gateway rejects the session for good.
    """
    state = state or build_state(config)

    server = None
    server_task = None
    if config.keep_alive:
        server = uvicorn.Server(uvicorn.Config(
            create_app(state),
            host=config.host,
            port=config.port,
            log_level="debug" if config.debug else "info",
            loop="asyncio",
        ))
        server_task = asyncio.create_task(server.serve())
        logger.info(f"Keep Alive Web Server running on port {config.port}")

    try:
        await state.session.run()
    finally:
        logger.info("Mirror relay shutting down...")
        state.is_shutting_down = True
        if server is not None:
            server.should_exit = True
            await asyncio.gather(server_task, return_exceptions=True)
        await state.relay.close()
        logger.info("Mirror relay stopped")


def run_mirror(config: MirrorConfig):
    """Run the relay in a new event loop"""
    asyncio.run(serve(config))
