"""
Realtime message channel for the conversation UI.

A single websocket connection carrying JSON frames. Outbound payloads are
wrapped as {"event": "message", "data": payload}; inbound frames in the same
envelope (or bare objects) are dispatched by their "type" field to at most
one registered handler.

Usage:
    client = RealtimeClient("wss://broker.example.com/ws")
    client.on("greeting", handle_greeting)
    await client.connect()
    await client.send({"type": "hello"})
"""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import aiohttp

from retailiq.config import settings
from retailiq.logger import get_logger

logger = get_logger(__name__)

Frame = Dict[str, Any]
FrameHandler = Callable[[Frame], Union[None, Awaitable[None]]]

MESSAGE_EVENT = "message"


def unwrap(frame: Any) -> Optional[Frame]:
    """Return the message payload of an inbound frame, or None for other events."""
    if not isinstance(frame, dict):
        return None
    if "event" in frame:
        if frame.get("event") != MESSAGE_EVENT:
            return None
        data = frame.get("data")
        return data if isinstance(data, dict) else None
    return frame


class RealtimeClient:
    """
    Single-connection websocket client with per-type frame handlers.

    Features:
    - Idempotent connect, no reconnection
    - One handler per frame type, last registration wins
    - Optional catch-all for frames with no registered handler
    """

    def __init__(
        self,
        url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        heartbeat: Optional[float] = 30.0,
    ) -> None:
        self.url = url if url is not None else settings.realtime.websocket_url
        self.heartbeat = heartbeat
        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self._handlers: Dict[str, FrameHandler] = {}
        self._unhandled: Optional[FrameHandler] = None
        self._connect_lock: Optional[asyncio.Lock] = None

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    # ------------------------------------------------------------------
    # Handler registry
    # ------------------------------------------------------------------

    def on(self, frame_type: str, handler: FrameHandler) -> None:
        """Register the handler for a frame type, replacing any previous one."""
        self._handlers[frame_type] = handler

    def off(self, frame_type: str) -> None:
        self._handlers.pop(frame_type, None)

    def on_unhandled(self, handler: Optional[FrameHandler]) -> None:
        """Receive frames whose type has no handler. None restores silent drop."""
        self._unhandled = handler

    async def dispatch(self, frame: Frame) -> bool:
        """
        Deliver a frame to the handler registered for its type.

        Returns:
            True if a type handler ran
        """
        handler = self._handlers.get(frame.get("type"))
        if handler is None:
            if self._unhandled is not None:
                await self._invoke(self._unhandled, frame)
            else:
                logger.debug("Dropping frame with unregistered type %r", frame.get("type"))
            return False
        await self._invoke(handler, frame)
        return True

    async def _invoke(self, handler: FrameHandler, frame: Frame) -> None:
        try:
            result = handler(frame)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Handler error for %r: %s", frame.get("type"), exc)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Open the connection if it is not already open.

        Returns:
            True when connected
        """
        if not self.url:
            logger.error("WebSocket URL not configured")
            return False
        if self._connect_lock is None:
            self._connect_lock = asyncio.Lock()

        async with self._connect_lock:
            if self.connected:
                return True
            return await self._open()

    async def _open(self) -> bool:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(self.url, heartbeat=self.heartbeat)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("WebSocket error: %s", exc)
            await self._close_session()
            return False

        logger.info("Connected to WebSocket server")
        self._reader = asyncio.create_task(self._read_loop(self._ws))
        return True

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    try:
                        frame = unwrap(json.loads(message.data))
                    except ValueError:
                        logger.warning("Ignoring non-JSON frame")
                        continue
                    if frame is not None:
                        await self.dispatch(frame)
                elif message.type == aiohttp.WSMsgType.ERROR:
                    logger.error("WebSocket error: %s", ws.exception())
        finally:
            if self._ws is ws:
                self._ws = None
                self._reader = None
            logger.info("Disconnected from WebSocket server")

    async def disconnect(self) -> None:
        """Close and forget the connection."""
        ws, reader = self._ws, self._reader
        self._ws = None
        self._reader = None
        if ws is not None:
            await ws.close()
        if reader is not None and not reader.done():
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
        await self._close_session()

    async def _close_session(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def send(self, payload: Frame) -> bool:
        """
        Emit a message frame.

        Returns:
            False (and nothing is sent) when not connected
        """
        if not self.connected:
            logger.warning("Not connected; dropping outbound %r frame", payload.get("type"))
            return False
        await self._ws.send_json({"event": MESSAGE_EVENT, "data": payload})
        return True
