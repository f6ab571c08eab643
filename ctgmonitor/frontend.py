"""Websocket fan-out of messages to connected frontend clients."""

from __future__ import annotations

import asyncio
import contextlib
import logging

import aiohttp
from aiohttp import web

_SEND_ERRORS = (ConnectionError, RuntimeError, aiohttp.ClientError)


class FrontendHub:
    """Keeps frontend websocket clients and broadcasts queued messages to them."""

    def __init__(self, logger: logging.Logger | None = None, queue_size: int = 256) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._clients: set[web.WebSocketResponse] = set()
        self._queue: asyncio.Queue[bytes | str] = asyncio.Queue(maxsize=queue_size)
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        """Start the broadcast loop on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._broadcast_loop())

    async def stop(self) -> None:
        """Stop broadcasting and close every client."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        clients = list(self._clients)
        self._clients.clear()
        for client in clients:
            await client.close()

    async def _broadcast_loop(self) -> None:
        while True:
            message = await self._queue.get()
            text = message.decode("utf-8", "replace") if isinstance(message, bytes) else message
            for client in list(self._clients):
                try:
                    await client.send_str(text)
                except _SEND_ERRORS as exc:
                    self._logger.error("Failed to send message to frontend client: %s", exc)
                    self._clients.discard(client)
                    await client.close()

    async def handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._clients.add(ws)
        self._logger.info("Frontend client connected total_clients=%d", len(self._clients))
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.ERROR:
                    self._logger.error("WebSocket unexpectedly closed: %s", ws.exception())
                    break
        finally:
            self._clients.discard(ws)
            await ws.close()
            self._logger.info(
                "Frontend client disconnected remaining_clients=%d", len(self._clients)
            )
        return ws

    def broadcast_to_frontend(self, message: bytes | str) -> bool:
        """Queue a message for all clients; return False if it was dropped."""
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self._logger.warning("Broadcast channel full, dropping message")
            return False
        self._logger.debug("Message queued for broadcast to frontend")
        return True

    def client_count(self) -> int:
        return len(self._clients)