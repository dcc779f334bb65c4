"""
Discord Gateway Session

Owns the single gateway websocket, the heartbeat task bound to it and the
resumable session state. Frames are decoded and dispatched by opcode on the
task that reads the socket, so session state has a single writer.

Lifecycle:
    DISCONNECTED -> CONNECTING -> AWAITING_HELLO -> AUTHENTICATING -> READY
    any socket error/close, RECONNECT or retryable INVALID_SESSION
        -> RECONNECTING -> CONNECTING (resume when possible)
    non-retryable INVALID_SESSION -> state cleared, InvalidSessionError raised

File: mirror_relay/gateway/session.py
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .config import DEFAULT_GATEWAY_URL, DEFAULT_INTENTS
from .errors import InvalidSessionError, ProtocolError, error_handler
from .protocol import (
    GatewayFrame, Hello, MessageCreate, Opcode, Ready, Resumed,
    heartbeat, identify, parse_dispatch, resume,
)

if TYPE_CHECKING:
    from .metrics import MetricsCollector

logger = logging.getLogger("mirror.gateway.session")

# Close code outside 1000/1001 so the gateway keeps the session resumable
RESUMABLE_CLOSE_CODE = 4000

MessageHandler = Callable[[MessageCreate], Awaitable[None]]
ReadyHandler = Callable[[Ready], None]
Connector = Callable[[str], Awaitable[Any]]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_HELLO = "awaiting_hello"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    RECONNECTING = "reconnecting"


@dataclass
class SessionState:
    """Resumable session state, kept in memory only"""
    session_id: str = ""
    resume_url: str = ""
    sequence: Optional[int] = None
    authenticated: bool = False
    self_id: Optional[str] = None

    @property
    def resumable(self) -> bool:
        return bool(self.session_id and self.resume_url)

    def observe_sequence(self, sequence: Optional[int]) -> bool:
        """Advance the sequence number; never moves backwards"""
        if sequence is None:
            return False
        if self.sequence is None or sequence > self.sequence:
            self.sequence = sequence
            return True
        return False

    def clear(self):
        self.session_id = ""
        self.resume_url = ""
        self.sequence = None
        self.authenticated = False
        self.self_id = None


async def open_websocket(url: str):
    """Default connector; READY payloads can exceed the 1MB frame default"""
    return await websockets.connect(url, max_size=None, open_timeout=30)


class GatewaySession:
    """Gateway session manager"""

    def __init__(
        self,
        token: str,
        gateway_url: str = DEFAULT_GATEWAY_URL,
        intents: int = DEFAULT_INTENTS,
        on_message: Optional[MessageHandler] = None,
        on_ready: Optional[ReadyHandler] = None,
        connect: Optional[Connector] = None,
        reconnect_base_delay: float = 1.0,
        reconnect_max_delay: float = 60.0,
        metrics: Optional["MetricsCollector"] = None,
    ):
        """
        Initialize gateway session

        Args:
            token: Bot token (the Bot prefix is added when missing)
            gateway_url: URL used for fresh connections
            intents: Gateway intents bitmask sent on identify
            on_message: Coroutine called for every MESSAGE_CREATE event
            on_ready: Callback invoked with the READY event
            connect: Coroutine opening a websocket for a URL
            reconnect_base_delay: First reconnect delay in seconds
            reconnect_max_delay: Reconnect delay cap in seconds
            metrics: Optional metrics collector
        """
        self.token = token
        self.gateway_url = gateway_url
        self.intents = intents
        self.on_message = on_message
        self.on_ready = on_ready
        self.metrics = metrics

        self.state = SessionState()
        self.connection_state = ConnectionState.DISCONNECTED
        self.connect_attempts = 0
        self.last_heartbeat_ack: Optional[float] = None

        self._connect = connect or open_websocket
        self._reconnect_base_delay = reconnect_base_delay
        self._max_reconnect_delay = reconnect_max_delay
        self._reconnect_attempts = 0

        self._ws = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._awaiting_ack = False
        self._reconnect_reason: Optional[str] = None
        self._running = False

        self._handlers = {
            Opcode.HELLO: self._on_hello,
            Opcode.HEARTBEAT: self._on_heartbeat_request,
            Opcode.HEARTBEAT_ACK: self._on_heartbeat_ack,
            Opcode.DISPATCH: self._on_dispatch,
            Opcode.RECONNECT: self._on_reconnect,
            Opcode.INVALID_SESSION: self._on_invalid_session,
        }

    @property
    def connected(self) -> bool:
        return self._ws is not None

    @property
    def running(self) -> bool:
        return self._running

    async def run(self):
        """
        Connect and keep reconnecting until stop() is called

        Transient faults are logged and followed by a resume (or a fresh
        connection when no session is held). Raises InvalidSessionError when
        the gateway rejects the session for good.
        """
        self._running = True
        try:
            while self._running:
                await self._connect_once()
                if not self._running:
                    break
                await self._reconnect_delay()
        finally:
            self._running = False
            await self._teardown()
            self.connection_state = ConnectionState.DISCONNECTED

    async def stop(self):
        """Stop the session and close the socket"""
        self._running = False
        await self._teardown()
        self.connection_state = ConnectionState.DISCONNECTED
        logger.info("Gateway session stopped")

    async def _connect_once(self):
        """Open one connection and process frames until it ends"""
        resuming = self.state.resumable
        if resuming:
            url = self.state.resume_url
            logger.info("Resuming session...")
            logger.debug(f"Session ID: {self.state.session_id}")
            logger.debug(f"Resume Gateway URL: {url}")
            logger.debug(f"Sequence: {self.state.sequence}")
        else:
            url = self.gateway_url
            # A fresh connection always needs its own identify
            self.state.authenticated = False
            self.state.sequence = None
            logger.info("Starting new connection...")

        self.connection_state = ConnectionState.CONNECTING
        self.connect_attempts += 1
        self._reconnect_reason = None
        self._awaiting_ack = False

        try:
            ws = await self._connect(url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            error_handler.log_error(e, "Gateway connection failed", logger)
            self.connection_state = ConnectionState.RECONNECTING
            return

        self._ws = ws
        self.connection_state = ConnectionState.AWAITING_HELLO
        logger.info("Connected to the Discord gateway.")

        try:
            if resuming:
                await self._send(ws, resume(self.token, self.state.session_id, self.state.sequence))

            async for raw in ws:
                await self.handle_frame(raw)
                if self._reconnect_reason or ws is not self._ws:
                    break

            if self._reconnect_reason:
                logger.info(f"Reconnecting: {self._reconnect_reason}")
            else:
                code = getattr(ws, "close_code", None)
                reason = getattr(ws, "close_reason", None) or ""
                logger.warning(
                    f"Connection closed (Code: {code}, Reason: {reason}). Attempting to reconnect..."
                )
        except ConnectionClosed as e:
            logger.warning(f"Connection closed ({e}). Attempting to reconnect...")
        except (OSError, WebSocketException) as e:
            error_handler.log_error(e, "WebSocket error, reconnecting", logger)
        finally:
            await self._teardown()

    async def _reconnect_delay(self):
        """Exponential backoff without an attempt limit"""
        delay = min(
            self._reconnect_base_delay * (2 ** self._reconnect_attempts),
            self._max_reconnect_delay
        )
        self._reconnect_attempts += 1
        if self.metrics:
            self.metrics.record_reconnect()
        if delay > 0:
            logger.info(f"Reconnecting in {delay:.1f}s (attempt {self._reconnect_attempts})")
        await asyncio.sleep(delay)

    async def _teardown(self):
        """
        Invalidate the heartbeat task and close the current socket

        Nothing reads from a socket once it has been torn down, so no stale
        handler can process frames from an old connection.
        """
        task = self._heartbeat_task
        self._heartbeat_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        ws = self._ws
        self._ws = None
        if ws is not None:
            logger.info("Cleaning up old connection...")
            try:
                await ws.close(code=RESUMABLE_CLOSE_CODE, reason="reconnecting")
            except (OSError, WebSocketException) as e:
                logger.debug(f"Error closing websocket: {e}")

        if self.connection_state != ConnectionState.DISCONNECTED:
            self.connection_state = ConnectionState.RECONNECTING

    async def handle_frame(self, raw):
        """Decode one inbound frame, track its sequence and dispatch by opcode"""
        try:
            frame = GatewayFrame.from_json(raw)
        except ProtocolError as e:
            logger.warning(f"Ignoring undecodable frame: {e}")
            return

        self.state.observe_sequence(frame.s)

        handler = self._handlers.get(frame.op)
        if handler is None:
            logger.debug(f"Unhandled opcode: {frame.op}")
            return

        try:
            await handler(frame)
        except ProtocolError as e:
            logger.warning(f"Ignoring malformed op {frame.op} frame: {e}")

    async def _send(self, ws, frame: GatewayFrame):
        await ws.send(frame.to_json())

    async def send_heartbeat(self):
        ws = self._ws
        if ws is None:
            return
        self._awaiting_ack = True
        await self._send(ws, heartbeat(self.state.sequence))
        logger.debug("Heartbeat sent.")

    def _start_heartbeat(self, interval_seconds: float):
        if self._heartbeat_task and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
        self._heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(self._ws, interval_seconds)
        )

    async def _heartbeat_loop(self, ws, interval_seconds: float):
        """Heartbeat task bound to a single connection"""
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                if ws is not self._ws:
                    return
                if self._awaiting_ack:
                    logger.warning("Heartbeat was not acknowledged, closing zombie connection")
                    self._reconnect_reason = "heartbeat not acknowledged"
                    await ws.close(code=RESUMABLE_CLOSE_CODE, reason="zombie connection")
                    return
                await self.send_heartbeat()
        except asyncio.CancelledError:
            raise
        except (OSError, WebSocketException) as e:
            logger.debug(f"Heartbeat stopped: {e}")

    # Opcode handlers

    async def _on_hello(self, frame: GatewayFrame):
        hello = Hello.from_payload(frame.d)
        logger.info("Hello event received. Starting heartbeat...")

        await self.send_heartbeat()
        self._start_heartbeat(hello.heartbeat_interval / 1000)
        self.connection_state = ConnectionState.AUTHENTICATING
        logger.info("Heartbeat started.")

    async def _on_heartbeat_request(self, frame: GatewayFrame):
        logger.debug("Gateway requested an immediate heartbeat.")
        await self.send_heartbeat()

    async def _on_heartbeat_ack(self, frame: GatewayFrame):
        self._awaiting_ack = False
        self.last_heartbeat_ack = time.monotonic()

        if not self.state.authenticated and self._ws is not None:
            self.state.authenticated = True
            await self._send(self._ws, identify(self.token, self.intents))
            logger.info("Authenticating...")

    async def _on_dispatch(self, frame: GatewayFrame):
        event = parse_dispatch(frame)
        if event is None:
            logger.debug(f"Ignoring dispatch event {frame.t}")
            return

        if isinstance(event, Ready):
            self._on_ready(event)
        elif isinstance(event, Resumed):
            self.connection_state = ConnectionState.READY
            self._reconnect_attempts = 0
            logger.info(f"Session resumed at sequence {self.state.sequence}.")
        elif isinstance(event, MessageCreate):
            await self._on_message_create(event)

    def _on_ready(self, ready: Ready):
        # The READY frame's sequence was already recorded by handle_frame
        self.state.session_id = ready.session_id
        self.state.resume_url = ready.resume_url
        self.state.self_id = ready.user.id
        self.state.authenticated = True
        self.connection_state = ConnectionState.READY
        self._reconnect_attempts = 0

        logger.info(f"Logged in as {ready.user.tag}. Bot ID: {ready.user.id}")

        if self.on_ready:
            self.on_ready(ready)

    async def _on_message_create(self, message: MessageCreate):
        if not self.on_message:
            return
        try:
            await self.on_message(message)
        except Exception as e:
            # One bad message must not take the connection down
            error_handler.log_error(e, f"Failed to process message {message.id}", logger)

    async def _on_reconnect(self, frame: GatewayFrame):
        logger.info("Reconnect request received. Reconnecting...")
        self._reconnect_reason = "gateway requested reconnect"

    async def _on_invalid_session(self, frame: GatewayFrame):
        logger.info("Invalid session.")
        if frame.d:
            logger.info("Can retry (d=true), reconnecting...")
            self._reconnect_reason = "invalid session (resumable)"
            return

        logger.error("Cannot retry (d=false), exiting...")
        self.state.clear()
        self._running = False
        raise InvalidSessionError("Gateway invalidated the session and it cannot be resumed")
