"""
Console relay connection module.

This module keeps one WebSocket connection to the console relay alive,
subscribes to the console stream and routes classified events into the chat
log. A single task owns every state transition::

    connecting -> open -> closed -> (reconnect delay) -> connecting ...

until the manager is stopped.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Callable, Dict, Optional

import aiohttp

from panel_chat.constants import RECONNECT_DELAY, WS_HEARTBEAT_INTERVAL, REQUEST_TIMEOUT
from panel_chat.protocol_definitions import create_subscribe_message, create_unsubscribe_message
from panel_chat.chat.classifier import Route, classify_envelope
from panel_chat.utils.logger import logger


class ConnectionState:
    """States of the relay connection."""
    CONNECTING = 'connecting'
    OPEN = 'open'
    CLOSED = 'closed'


class TransportError(ConnectionError):
    """Raised when the WebSocket reports an error frame."""


class CancellationToken:
    """Teardown signal shared by everything that completes asynchronously."""

    def __init__(self):
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        """Mark the owner as torn down. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    async def sleep(self, delay: float) -> bool:
        """Sleep ``delay`` seconds. Returns False if cancelled before the delay elapsed."""
        if self._cancelled:
            return False
        if self._event is None:
            self._event = asyncio.Event()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return not self._cancelled
        return False


class WebSocketConnection:
    """One open WebSocket to the relay."""

    def __init__(self, ws: aiohttp.ClientWebSocketResponse):
        self._ws = ws

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def send_json(self, message: Dict[str, Any]):
        """Send a JSON envelope."""
        await self._ws.send_str(json.dumps(message))

    async def frames(self) -> AsyncIterator[str]:
        """Yield inbound text payloads until the socket closes."""
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.BINARY:
                yield msg.data.decode('utf-8', errors='replace')
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise TransportError(f"WebSocket error: {self._ws.exception()}")

    async def close(self):
        await self._ws.close()


class WebSocketTransport:
    """Opens WebSocket connections to the relay using aiohttp."""

    def __init__(self, url: str, token: Optional[str] = None,
                 heartbeat: float = WS_HEARTBEAT_INTERVAL, connect_timeout: float = REQUEST_TIMEOUT):
        self.url = url
        self.token = token
        self.heartbeat = heartbeat
        self.connect_timeout = connect_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> WebSocketConnection:
        """Open a new connection."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()

        headers = {}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'

        ws = await asyncio.wait_for(
            self._session.ws_connect(self.url, heartbeat=self.heartbeat, headers=headers),
            timeout=self.connect_timeout
        )
        return WebSocketConnection(ws)

    async def aclose(self):
        """Release the underlying HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


class ConnectionManager:
    """
    Owns the single relay connection and its reconnection.

    Args:
        transport: Object with ``url``, ``async connect()`` and ``async aclose()``
        sink: Chat log (or a proxy) with ``append_live`` and ``prepend_history``
        reconnect_delay: Seconds to wait after a close before reconnecting
        on_state_change: Called with the new ConnectionState value
        token: Cancellation token; a new one is created when omitted
    """

    def __init__(self, transport, sink, reconnect_delay: float = RECONNECT_DELAY,
                 on_state_change: Optional[Callable[[str], None]] = None,
                 token: Optional[CancellationToken] = None):
        self.transport = transport
        self.sink = sink
        self.reconnect_delay = reconnect_delay
        self.on_state_change = on_state_change
        self.token = token or CancellationToken()
        self.state: Optional[str] = None
        self.connect_attempts = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def stopped(self) -> bool:
        return self.token.cancelled

    def start(self):
        """Start connecting. Calling it again while running has no effect."""
        if self.token.cancelled:
            raise RuntimeError("connection manager has been stopped")
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self):
        """Tear the connection down for good and cancel any pending reconnect."""
        if self.token.cancelled:
            return
        self.token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait_closed(self):
        """Wait until the owning task has finished."""
        if self._task is not None:
            await asyncio.wait({self._task})

    async def aclose(self):
        """Stop, wait for the socket to close and release the transport."""
        self.stop()
        await self.wait_closed()
        await self.transport.aclose()

    async def _run(self):
        while not self.token.cancelled:
            await self._connect_once()
            if self.token.cancelled:
                break
            logger.info(f"[INFO] Reconnecting to console relay in {self.reconnect_delay}s...")
            if not await self.token.sleep(self.reconnect_delay):
                break

    async def _connect_once(self):
        self.connect_attempts += 1
        self._set_state(ConnectionState.CONNECTING)
        connection = None
        try:
            connection = await self.transport.connect()
            if self.token.cancelled:
                return
            logger.log_connection(self.transport.url, True)
            self._set_state(ConnectionState.OPEN)
            await connection.send_json(create_subscribe_message())

            async for frame in connection.frames():
                if self.token.cancelled:
                    break
                self.handle_frame(frame)

            if not self.token.cancelled:
                logger.warning("[WARNING] Console relay closed the connection")
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            if connection is None:
                logger.log_connection(self.transport.url, False)
            logger.log_error("console connection", e)
        except Exception as e:
            logger.log_error("console event handling", e)
        finally:
            if connection is not None:
                await self._close_connection(connection)
            self._set_state(ConnectionState.CLOSED)

    async def _close_connection(self, connection):
        if self.token.cancelled and self.state == ConnectionState.OPEN and not connection.closed:
            try:
                await connection.send_json(create_unsubscribe_message())
            except (aiohttp.ClientError, OSError) as e:
                logger.debug(f"Unsubscribe not delivered: {e}")
        await connection.close()

    def handle_frame(self, raw: str):
        """Classify one inbound payload and route it into the chat log."""
        if self.token.cancelled:
            return
        try:
            envelope = json.loads(raw)
            result = classify_envelope(envelope)
        except ValueError as e:  # invalid JSON or MalformedEnvelopeError
            logger.error(f"[ERROR] Dropped malformed console frame: {e}")
            return

        if result.route == Route.HISTORY:
            if result.events:
                self.sink.prepend_history(result.events)
        elif result.route == Route.LIVE:
            for event in result.events:
                self.sink.append_live(event)

    def _set_state(self, state: str):
        if self.state == state:
            return
        self.state = state
        logger.log_state(state)
        if self.on_state_change is not None and not self.token.cancelled:
            self.on_state_change(state)
