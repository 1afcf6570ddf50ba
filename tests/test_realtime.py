"""
Tests for the realtime message channel.

These tests verify frame unwrapping, handler registration and dispatch,
and the connection lifecycle against a mocked aiohttp session.
"""

import asyncio
import json

import aiohttp
import pytest
from unittest.mock import AsyncMock, MagicMock

from retailiq.realtime import RealtimeClient, unwrap


def _text(payload):
    return MagicMock(type=aiohttp.WSMsgType.TEXT, data=json.dumps(payload))


def _session(messages=()):
    ws = MagicMock()
    ws.closed = False
    ws.__aiter__.return_value = list(messages)
    ws.send_json = AsyncMock()
    ws.close = AsyncMock()
    session = MagicMock()
    session.ws_connect = AsyncMock(return_value=ws)
    session.close = AsyncMock()
    return session, ws


class _OpenSocket:
    """Socket that stays open until closed."""

    def __init__(self):
        self.closed = False
        self.send_json = AsyncMock()
        self._closing = asyncio.Event()

    def __aiter__(self):
        return self

    async def __anext__(self):
        await self._closing.wait()
        raise StopAsyncIteration

    async def close(self):
        self.closed = True
        self._closing.set()


class TestUnwrap:
    """Tests for inbound frame unwrapping."""

    def test_message_envelope(self):
        assert unwrap({"event": "message", "data": {"type": "greeting"}}) == {"type": "greeting"}

    def test_other_events_ignored(self):
        assert unwrap({"event": "presence", "data": {"type": "greeting"}}) is None

    def test_bare_frame(self):
        assert unwrap({"type": "greeting", "text": "hi"}) == {"type": "greeting", "text": "hi"}

    def test_non_object(self):
        assert unwrap(["greeting"]) is None


class TestDispatch:
    """Tests for handler registration and dispatch."""

    @pytest.fixture
    def client(self):
        return RealtimeClient(url="ws://broker.test/ws")

    @pytest.mark.asyncio
    async def test_registered_handler_receives_whole_frame(self, client):
        received = []
        client.on("greeting", received.append)

        handled = await client.dispatch({"type": "greeting", "text": "Hello"})

        assert handled is True
        assert received == [{"type": "greeting", "text": "Hello"}]

    @pytest.mark.asyncio
    async def test_unregistered_type_is_dropped(self, client):
        received = []
        client.on("greeting", received.append)

        handled = await client.dispatch({"type": "farewell"})

        assert handled is False
        assert received == []

    @pytest.mark.asyncio
    async def test_catch_all_sees_unregistered_frames(self, client):
        unhandled = []
        client.on_unhandled(unhandled.append)

        await client.dispatch({"type": "farewell"})

        assert unhandled == [{"type": "farewell"}]

    @pytest.mark.asyncio
    async def test_last_registration_wins(self, client):
        first, second = [], []
        client.on("greeting", first.append)
        client.on("greeting", second.append)

        await client.dispatch({"type": "greeting"})

        assert first == []
        assert second == [{"type": "greeting"}]

    @pytest.mark.asyncio
    async def test_off_removes_handler(self, client):
        received = []
        client.on("greeting", received.append)
        client.off("greeting")

        assert await client.dispatch({"type": "greeting"}) is False
        assert received == []

    @pytest.mark.asyncio
    async def test_async_handler_is_awaited(self, client):
        handler = AsyncMock()
        client.on("greeting", handler)

        await client.dispatch({"type": "greeting"})

        handler.assert_awaited_once_with({"type": "greeting"})

    @pytest.mark.asyncio
    async def test_handler_errors_are_contained(self, client):
        client.on("greeting", MagicMock(side_effect=RuntimeError("bad handler")))

        assert await client.dispatch({"type": "greeting"}) is True


class TestConnection:
    """Tests for the connection lifecycle."""

    @pytest.mark.asyncio
    async def test_connect_without_url(self):
        client = RealtimeClient(url="")

        assert await client.connect() is False
        assert client.connected is False

    @pytest.mark.asyncio
    async def test_send_while_disconnected(self):
        client = RealtimeClient(url="ws://broker.test/ws")

        assert await client.send({"type": "hello"}) is False

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self):
        session, ws = _session()
        client = RealtimeClient(url="ws://broker.test/ws", session=session)

        assert await client.connect() is True
        assert await client.connect() is True

        session.ws_connect.assert_awaited_once()
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_send_wraps_payload(self):
        session, ws = _session()
        client = RealtimeClient(url="ws://broker.test/ws", session=session)
        await client.connect()

        assert await client.send({"type": "hello"}) is True

        ws.send_json.assert_awaited_once_with({"event": "message", "data": {"type": "hello"}})
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_inbound_frames_are_dispatched(self):
        session, ws = _session([
            _text({"event": "message", "data": {"type": "greeting", "text": "Hi"}}),
            _text({"event": "presence", "data": {"type": "greeting"}}),
            MagicMock(type=aiohttp.WSMsgType.TEXT, data="not json"),
        ])
        client = RealtimeClient(url="ws://broker.test/ws", session=session)
        received = []
        client.on("greeting", received.append)

        await client.connect()
        await client._reader

        assert received == [{"type": "greeting", "text": "Hi"}]
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_keeps_injected_session(self):
        session, ws = _session()
        client = RealtimeClient(url="ws://broker.test/ws", session=session)
        await client.connect()

        await client.disconnect()

        ws.close.assert_awaited_once()
        session.close.assert_not_called()
        assert client.connected is False

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        session, _ = _session()
        session.ws_connect.side_effect = aiohttp.ClientConnectionError("refused")
        client = RealtimeClient(url="ws://broker.test/ws", session=session)

        assert await client.connect() is False
        assert client.connected is False

    @pytest.mark.asyncio
    async def test_reconnects_after_server_close(self):
        session, ws = _session()
        client = RealtimeClient(url="ws://broker.test/ws", session=session)
        await client.connect()

        await client._reader

        assert client.connected is False
        assert await client.connect() is True
        assert session.ws_connect.await_count == 2
        assert await client.send({"type": "hello"}) is True
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_overlapping_connects_open_one_socket(self):
        socket = _OpenSocket()

        async def ws_connect(url, heartbeat=None):
            await asyncio.sleep(0)
            return socket

        session = MagicMock()
        session.ws_connect = AsyncMock(side_effect=ws_connect)
        client = RealtimeClient(url="ws://broker.test/ws", session=session)

        results = await asyncio.gather(client.connect(), client.connect())

        assert results == [True, True]
        assert session.ws_connect.await_count == 1
        await client.disconnect()
        assert socket.closed is True
