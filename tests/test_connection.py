#!/usr/bin/env python3
"""
Unit tests for the console relay connection.

Tests:
- Subscription on open and routing of classified frames
- Malformed frames are dropped without closing the connection
- Reconnection after a close, and stop() cancelling a pending reconnect
- Unsubscribe on stop
- A failing event handler ends the connection, which then reconnects
- End-to-end against an aiohttp WebSocket server
"""

import asyncio
import json
import unittest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import aiohttp
from aiohttp import web
from aiohttp.test_utils import TestServer

from panel_chat.protocol_definitions import ChatTab, DmTarget, EventKind
from panel_chat.chat.connection import (
    CancellationToken, ConnectionManager, ConnectionState, WebSocketTransport
)
from panel_chat.chat.message_store import MessageStore
from panel_chat.chat.text import strip_colors
from panel_chat.chat.view_projector import project_events


async def wait_until(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def chat_line(text: str, player: str = "Bob") -> str:
    return json.dumps({
        'type': 'console_line',
        'data': {'timestamp': '2024-05-01T12:00:00Z', 'raw': f'say: {player}: {text}',
                 'player': player, 'message': text}
    })


class FakeConnection:
    """In-memory connection fed from a queue."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._frames = asyncio.Queue()

    def push(self, frame: str):
        self._frames.put_nowait(frame)

    def finish(self):
        self._frames.put_nowait(None)

    async def send_json(self, message):
        self.sent.append(message)

    async def frames(self):
        while True:
            frame = await self._frames.get()
            if frame is None:
                return
            yield frame

    async def close(self):
        self.closed = True


class FlakySink(MessageStore):
    """Chat log whose first live append fails."""

    def __init__(self):
        super().__init__()
        self.failed = False

    def append_live(self, event):
        if not self.failed:
            self.failed = True
            raise RuntimeError("listener failed")
        super().append_live(event)


class FakeTransport:
    """Transport handing out FakeConnections, or failing on demand."""

    url = 'ws://relay.test/ws'

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.connections = []
        self.attempts = 0
        self.closed = False

    async def connect(self):
        self.attempts += 1
        if self.fail:
            raise aiohttp.ClientConnectionError("connection refused")
        connection = FakeConnection()
        self.connections.append(connection)
        return connection

    async def aclose(self):
        self.closed = True


class TestCancellationToken(unittest.IsolatedAsyncioTestCase):
    """Test cases for CancellationToken."""

    async def test_sleep_elapses(self):
        token = CancellationToken()
        self.assertTrue(await token.sleep(0.01))

    async def test_cancel_wakes_sleep(self):
        token = CancellationToken()
        sleeper = asyncio.ensure_future(token.sleep(10))
        await asyncio.sleep(0.01)
        token.cancel()
        self.assertFalse(await asyncio.wait_for(sleeper, 1.0))

    async def test_cancel_idempotent(self):
        token = CancellationToken()
        token.cancel()
        token.cancel()
        self.assertTrue(token.cancelled)
        self.assertFalse(await token.sleep(0.01))


class TestConnectionManager(unittest.IsolatedAsyncioTestCase):
    """Test cases for ConnectionManager with a fake transport."""

    async def asyncSetUp(self):
        self.store = MessageStore()
        self.transport = FakeTransport()
        self.states = []
        self.manager = ConnectionManager(
            self.transport, self.store,
            reconnect_delay=0.05,
            on_state_change=self.states.append
        )

    async def asyncTearDown(self):
        await self.manager.aclose()

    async def open_connection(self, index: int = 0) -> FakeConnection:
        await wait_until(lambda: len(self.transport.connections) > index
                         and self.manager.state == ConnectionState.OPEN)
        return self.transport.connections[index]

    async def test_subscribes_on_open(self):
        self.manager.start()
        connection = await self.open_connection()

        self.assertEqual(connection.sent, [{'type': 'subscribe_console'}])
        self.assertEqual(self.states, [ConnectionState.CONNECTING, ConnectionState.OPEN])

    async def test_routes_history_and_live(self):
        self.manager.start()
        connection = await self.open_connection()

        connection.push(chat_line("live"))
        connection.push(json.dumps({
            'type': 'console_history',
            'data': [
                {'timestamp': None, 'raw': 'say: Ann: old one', 'player': 'Ann', 'message': 'old one'},
                {'timestamp': None, 'raw': 'ShutdownGame:'},
                {'timestamp': None, 'raw': 'say: Ann: old two', 'player': 'Ann', 'message': 'old two'},
            ]
        }))
        connection.push(json.dumps({'type': 'player_dm', 'data': {'slot': 2, 'name': 'Ann', 'message': 'psst'}}))
        await wait_until(lambda: len(self.store) == 4)

        self.assertEqual([e.body for e in self.store], ["old one", "old two", "live", "psst"])
        self.assertEqual(self.store.events[-1].kind, EventKind.DM_RECEIVED)

    async def test_malformed_frame_dropped(self):
        self.manager.start()
        connection = await self.open_connection()

        connection.push("{not json")
        connection.push(json.dumps([1, 2]))
        connection.push(json.dumps({'type': 'console_history', 'data': 'nope'}))
        connection.push(chat_line("still here"))
        await wait_until(lambda: len(self.store) == 1)

        self.assertEqual(self.store.events[0].body, "still here")
        self.assertEqual(self.manager.state, ConnectionState.OPEN)
        self.assertEqual(self.transport.attempts, 1)

    async def test_non_string_fields_do_not_stop_the_stream(self):
        rendered = []

        def render():
            event = self.store.events[-1]
            rendered.append(strip_colors(event.actor) + strip_colors(event.body))

        self.store.add_listener(render)
        self.manager.start()
        connection = await self.open_connection()

        connection.push(json.dumps({'type': 'console_line',
                                    'data': {'raw': 'say: x', 'player': 5, 'message': ['x']}}))
        connection.push(json.dumps({'type': 'player_dm', 'data': {'slot': 'a', 'name': 7, 'message': 'hi'}}))
        connection.push(chat_line("still here"))
        await wait_until(lambda: len(self.store) == 3)

        self.assertEqual(self.store.events[-1].body, "still here")
        self.assertEqual(rendered[-1], "Bobstill here")
        dms = project_events(self.store.events, ChatTab.DM, DmTarget(slot=3, name='^1Bob'))
        self.assertEqual(dms, [])
        self.assertEqual(self.transport.attempts, 1)

    async def test_handler_failure_reconnects(self):
        store = FlakySink()
        manager = ConnectionManager(self.transport, store, reconnect_delay=0.01)
        manager.start()
        try:
            await wait_until(lambda: len(self.transport.connections) == 1)
            self.transport.connections[0].push(chat_line("boom"))

            await wait_until(lambda: len(self.transport.connections) == 2
                             and manager.state == ConnectionState.OPEN)
            self.transport.connections[1].push(chat_line("after"))
            await wait_until(lambda: len(store) == 1)

            self.assertEqual(store.events[0].body, "after")
            self.assertTrue(self.transport.connections[0].closed)
        finally:
            await manager.aclose()

    async def test_reconnects_after_close(self):
        self.manager.start()
        first = await self.open_connection()

        first.finish()
        second = await self.open_connection(1)

        self.assertTrue(first.closed)
        self.assertEqual(second.sent, [{'type': 'subscribe_console'}])
        self.assertEqual(self.transport.attempts, 2)
        self.assertIn(ConnectionState.CLOSED, self.states)

    async def test_failed_connect_retries(self):
        self.transport.fail = True
        self.manager.start()
        await wait_until(lambda: self.transport.attempts >= 2)

        self.assertNotIn(ConnectionState.OPEN, self.states)
        self.assertEqual(self.states[:2], [ConnectionState.CONNECTING, ConnectionState.CLOSED])
        self.assertEqual(len(self.store), 0)

    async def test_stop_cancels_pending_reconnect(self):
        self.transport.fail = True
        manager = ConnectionManager(self.transport, self.store, reconnect_delay=30)
        manager.start()
        await wait_until(lambda: manager.state == ConnectionState.CLOSED)

        manager.stop()
        await asyncio.wait_for(manager.wait_closed(), 1.0)

        self.assertEqual(self.transport.attempts, 1)
        self.assertTrue(manager.stopped)

    async def test_stop_unsubscribes_and_closes(self):
        self.manager.start()
        connection = await self.open_connection()

        self.manager.stop()
        await asyncio.wait_for(self.manager.wait_closed(), 1.0)

        self.assertEqual(connection.sent[-1], {'type': 'unsubscribe_console'})
        self.assertTrue(connection.closed)
        self.assertEqual(self.states[-1], ConnectionState.OPEN)

    async def test_stop_is_idempotent(self):
        self.manager.start()
        await self.open_connection()

        self.manager.stop()
        self.manager.stop()
        await self.manager.aclose()

        self.assertTrue(self.transport.closed)
        with self.assertRaises(RuntimeError):
            self.manager.start()

    async def test_start_twice_keeps_one_connection(self):
        self.manager.start()
        self.manager.start()
        await self.open_connection()
        await asyncio.sleep(0.05)
        self.assertEqual(self.transport.attempts, 1)

    async def test_frames_after_stop_ignored(self):
        self.manager.stop()
        self.manager.handle_frame(chat_line("late"))
        self.assertEqual(len(self.store), 0)


class TestWebSocketTransport(unittest.IsolatedAsyncioTestCase):
    """End-to-end test against a real aiohttp WebSocket server."""

    async def asyncSetUp(self):
        self.received = []
        self.auth_headers = []

        app = web.Application()
        app.router.add_get('/ws', self.ws_handler)
        self.server = TestServer(app)
        await self.server.start_server()

        self.store = MessageStore()
        transport = WebSocketTransport(str(self.server.make_url('/ws')), token='secret')
        self.manager = ConnectionManager(transport, self.store, reconnect_delay=0.05)

    async def asyncTearDown(self):
        await self.manager.aclose()
        await self.server.close()

    async def ws_handler(self, request):
        self.auth_headers.append(request.headers.get('Authorization'))
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        async for msg in ws:
            if msg.type != aiohttp.WSMsgType.TEXT:
                continue
            data = json.loads(msg.data)
            self.received.append(data['type'])
            if data['type'] == 'subscribe_console':
                await ws.send_json({
                    'type': 'console_history',
                    'data': [{'timestamp': '2024-05-01T11:59:00Z', 'raw': 'say: Bob: earlier',
                              'player': 'Bob', 'message': 'earlier'}]
                })
                await ws.send_str(chat_line("now"))
        return ws

    async def test_history_then_live(self):
        self.manager.start()
        await wait_until(lambda: len(self.store) == 2)

        self.assertEqual([e.body for e in self.store], ["earlier", "now"])
        self.assertEqual(self.auth_headers, ['Bearer secret'])
        self.assertEqual(self.received, ['subscribe_console'])

    async def test_unsubscribe_on_stop(self):
        self.manager.start()
        await wait_until(lambda: len(self.store) == 2)

        await self.manager.aclose()
        await wait_until(lambda: 'unsubscribe_console' in self.received)


if __name__ == '__main__':
    unittest.main()
