"""Control-socket client used by controller and synth peers."""

from __future__ import annotations

import asyncio
import inspect
import json
from collections import deque
from typing import Any, Awaitable, Callable

import websockets
from loguru import logger

MessageHandler = Callable[[dict[str, Any]], Awaitable[None] | None]

# Only the latest of these is still meaningful once the socket is back
COALESCED_TYPES = ("get-controller", "controller-connections")
MAX_OUTGOING = 256


class SignalingClient:
    """
    Keeps one control socket to the relay open.

    Registers on every (re)connect, sends a heartbeat every
    `heartbeat_seconds` and reconnects `reconnect_delay_seconds` after an
    unexpected close. Outgoing messages sent while the socket is down wait
    in a bounded local buffer, where a newer `get-controller` or
    `controller-connections` replaces the one already waiting.
    """

    def __init__(
        self,
        url: str,
        peer_id: str,
        on_message: MessageHandler,
        heartbeat_seconds: float = 30.0,
        reconnect_delay_seconds: float = 1.0,
        max_outgoing: int = MAX_OUTGOING,
    ) -> None:
        self.url = url
        self.peer_id = peer_id
        self.on_message = on_message
        self.heartbeat_seconds = heartbeat_seconds
        self.reconnect_delay_seconds = reconnect_delay_seconds

        self.connected = asyncio.Event()
        self._outgoing: deque[dict[str, Any]] = deque()
        self._has_outgoing = asyncio.Event()
        self.max_outgoing = max_outgoing
        self._closing = False
        self._websocket = None

    def send_soon(self, message: dict[str, Any]) -> None:
        """Queue a message for the writer; safe to call from sync code"""
        message_type = message.get("type")
        if message_type in COALESCED_TYPES:
            for stale in [queued for queued in self._outgoing if queued.get("type") == message_type]:
                self._outgoing.remove(stale)

        if len(self._outgoing) >= self.max_outgoing:
            dropped = self._outgoing.popleft()
            logger.warning(f"Outgoing buffer full, oldest message dropped | Peer: '{self.peer_id}' | Type: {dropped.get('type')}")

        self._outgoing.append(message)
        self._has_outgoing.set()

    async def send(self, message: dict[str, Any]) -> None:
        self.send_soon(message)

    def pending_messages(self) -> list[dict[str, Any]]:
        return list(self._outgoing)

    def request_controller(self) -> None:
        self.send_soon({"type": "get-controller"})

    async def run(self) -> None:
        """Connect and serve until `close` is called"""
        while not self._closing:
            try:
                async with websockets.connect(self.url) as websocket:
                    self._websocket = websocket
                    await websocket.send(json.dumps({"type": "register", "id": self.peer_id}))
                    self.connected.set()
                    logger.info(f"Control socket connected | Peer: '{self.peer_id}' | URL: {self.url}")
                    await self._serve(websocket)
            except (OSError, websockets.ConnectionClosed, websockets.InvalidHandshake) as e:
                logger.warning(f"Control socket down | Peer: '{self.peer_id}' | Error: {str(e)}")
            finally:
                self._websocket = None
                self.connected.clear()

            if self._closing:
                break
            await asyncio.sleep(self.reconnect_delay_seconds)

        logger.info(f"Control socket closed | Peer: '{self.peer_id}'")

    async def close(self) -> None:
        self._closing = True
        if self._websocket is not None:
            await self._websocket.close()

    async def _serve(self, websocket) -> None:
        tasks = [
            asyncio.create_task(self._reader(websocket)),
            asyncio.create_task(self._writer(websocket)),
            asyncio.create_task(self._heartbeat(websocket)),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if task.exception() is not None:
                    raise task.exception()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _reader(self, websocket) -> None:
        async for raw in websocket:
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from relay | Peer: '{self.peer_id}' | Data: {str(raw)[:100]}")
                continue
            if not isinstance(message, dict):
                continue

            try:
                result = self.on_message(message)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Control message handler failed | Peer: '{self.peer_id}' | Type: {message.get('type')} | Error: {str(e)}")

    async def _writer(self, websocket) -> None:
        while True:
            if not self._outgoing:
                self._has_outgoing.clear()
                await self._has_outgoing.wait()
                continue

            message = self._outgoing.popleft()
            try:
                await websocket.send(json.dumps(message))
            except websockets.ConnectionClosed:
                # Keep it for the next connection
                self._outgoing.appendleft(message)
                raise

    async def _heartbeat(self, websocket) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_seconds)
            await websocket.send(json.dumps({"type": "heartbeat"}))
