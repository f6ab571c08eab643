"""Websocket intake of sensor data, storage, and relay through the ML service."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import aiohttp
from aiohttp import web

from .entities import CTGData, MessageData
from .repository import ExamRepository, RepositoryError

SENSOR_ID_QUERY_PARAM = "sensor_id"
SENSOR_TOKEN_HEADER = "X-Auth-Sensor-Token"

_SEND_ERRORS = (ConnectionError, RuntimeError, aiohttp.ClientError)


class FrontendBroadcaster(Protocol):
    def broadcast_to_frontend(self, message: bytes | str) -> Any: ...


class _SensorLog(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        return f"[sensor_id={self.extra['sensor_id']}] {msg}", kwargs


@dataclass
class SensorClient:
    """One connected sensor."""

    sensor_id: str
    ws: Any
    logger: logging.Logger | logging.LoggerAdapter


class SensorHub:
    """Connected sensors keyed by their identifier."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._clients: dict[str, SensorClient] = {}
        self._logger = logger or logging.getLogger(__name__)

    def add_client(self, client: SensorClient) -> None:
        self._clients[client.sensor_id] = client

    def remove_client(self, sensor_id: str) -> None:
        self._clients.pop(sensor_id, None)

    def client_count(self) -> int:
        return len(self._clients)

    async def broadcast_to_all(self, message: bytes | str) -> None:
        text = message.decode("utf-8", "replace") if isinstance(message, bytes) else message
        for client_id, client in list(self._clients.items()):
            try:
                await client.ws.send_str(text)
            except _SEND_ERRORS as exc:
                self._logger.error("Failed to send to client client_id=%s: %s", client_id, exc)


@dataclass
class SensorHandlerConfig:
    allowed_sensors_to_token: dict[str, str] = field(default_factory=dict)
    handshake_timeout: float = 0.0


class SensorHandler:
    """Accepts sensor websockets, stores their samples and forwards them to ML."""

    def __init__(
        self,
        cfg: SensorHandlerConfig,
        exam_repo: ExamRepository,
        frontend: FrontendBroadcaster | None,
        ml_addr: str,
        ml_port: str,
        logger: logging.Logger | None = None,
        reconnect_delay: float = 5.0,
    ) -> None:
        self._cfg = cfg
        self._exam_repo = exam_repo
        self._frontend = frontend
        self._ml_addr = ml_addr
        self._ml_port = ml_port
        self._logger = logger or logging.getLogger(__name__)
        self._reconnect_delay = reconnect_delay
        self._hub = SensorHub(self._logger)
        self._ml_ws: aiohttp.ClientWebSocketResponse | None = None
        self._ml_lock = asyncio.Lock()
        self._ml_task: asyncio.Task | None = None

    @property
    def hub(self) -> SensorHub:
        return self._hub

    @property
    def ml_url(self) -> str:
        return f"ws://{self._ml_addr}:{self._ml_port}/ws/ctg"

    @property
    def ml_connected(self) -> bool:
        return self._ml_ws is not None

    def start(self) -> None:
        """Start keeping a connection to the ML service."""
        if self._ml_task is None or self._ml_task.done():
            self._ml_task = asyncio.get_running_loop().create_task(self.run_ml_connection())

    async def stop(self) -> None:
        task, self._ml_task = self._ml_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def run_ml_connection(self) -> None:
        """Connect to the ML service, forward its replies, reconnect when lost."""
        url = self.ml_url
        async with aiohttp.ClientSession() as session:
            while True:
                try:
                    ws = await session.ws_connect(url)
                except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
                    self._logger.error("Failed to connect to ML service: %s", exc)
                    await asyncio.sleep(self._reconnect_delay)
                    continue
                async with self._ml_lock:
                    self._ml_ws = ws
                self._logger.info("Connected to ML service url=%s", url)
                await self._listen_ml(ws)
                self._logger.warning("ML service connection lost, reconnecting...")
                await asyncio.sleep(self._reconnect_delay)

    async def _listen_ml(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    payload = msg.data.encode("utf-8")
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    payload = msg.data
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self._logger.error("Error reading from ML service: %s", ws.exception())
                    break
                else:
                    continue
                self._logger.info(
                    "Received response from ML service response=%s",
                    payload.decode("utf-8", "replace"),
                )
                if self._frontend is not None:
                    self._frontend.broadcast_to_frontend(payload)
        finally:
            async with self._ml_lock:
                self._ml_ws = None
            await ws.close()

    async def send_to_ml(self, data: CTGData) -> bool:
        """Send one sample to the ML service; return whether it was sent."""
        async with self._ml_lock:
            if self._ml_ws is None:
                self._logger.warning("ML service not connected, skipping")
                return False
            try:
                await self._ml_ws.send_str(data.to_json())
            except _SEND_ERRORS as exc:
                self._logger.error("Failed to send data to ML service: %s", exc)
                return False
        self._logger.debug("Sent data to ML service sensor_id=%s", data.sensor_id)
        return True

    async def handle_websocket(self, request: web.Request) -> web.StreamResponse:
        sensor_id = request.query.get(SENSOR_ID_QUERY_PARAM, "")
        if not sensor_id:
            return web.Response(status=400, text="sensor_id required\n")
        expected = self._cfg.allowed_sensors_to_token.get(sensor_id)
        if expected is None:
            return web.Response(status=403, text="unknown sensor\n")
        if request.headers.get(SENSOR_TOKEN_HEADER, "") != expected:
            return web.Response(status=401, text="invalid token\n")

        ws = web.WebSocketResponse()
        if self._cfg.handshake_timeout > 0:
            await asyncio.wait_for(ws.prepare(request), self._cfg.handshake_timeout)
        else:
            await ws.prepare(request)

        try:
            if await asyncio.to_thread(self._exam_repo.needs_new_examination):
                await asyncio.to_thread(self._exam_repo.create_examination)
                self._logger.info("Created new examination")
        except RepositoryError as exc:
            self._logger.error("Failed to prepare examination: %s", exc)
            await ws.close(
                code=aiohttp.WSCloseCode.INTERNAL_ERROR, message=b"Internal server error"
            )
            return ws

        client = SensorClient(
            sensor_id=sensor_id,
            ws=ws,
            logger=_SensorLog(self._logger, {"sensor_id": sensor_id}),
        )
        self._hub.add_client(client)
        client.logger.info("Sensor connected total_clients=%d", self._hub.client_count())

        try:
            async for msg in ws:
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    await self.process_message(client, msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    client.logger.error("WebSocket unexpectedly closed: %s", ws.exception())
                    break
        finally:
            self._hub.remove_client(sensor_id)
            await ws.close()
            remaining = self._hub.client_count()
            client.logger.info("Sensor disconnected remaining_clients=%d", remaining)
            if remaining == 0:
                try:
                    await asyncio.to_thread(self._exam_repo.close_last_examination)
                except RepositoryError as exc:
                    client.logger.error("Failed to close examination: %s", exc)
                else:
                    client.logger.info("Examination closed - no clients remaining")
        return ws

    async def process_message(self, client: SensorClient, raw: str | bytes) -> CTGData | None:
        """Parse, store and forward one sensor message; None if it was skipped."""
        try:
            message = MessageData.from_json(raw)
        except ValueError as exc:
            client.logger.error("Failed to parse JSON: %s raw_message=%r", exc, raw)
            return None
        client.logger.info(
            "Received sensor data sec_from_start=%s bpm=%s uterus=%s spasms=%s",
            message.sec_from_start,
            message.data.bpm_child,
            message.data.uterus,
            message.data.spasms,
        )
        ctg = CTGData(
            sensor_id=client.sensor_id,
            sec_from_start=message.sec_from_start,
            bpm_child=message.data.bpm_child,
            uterus=message.data.uterus,
            spasms=message.data.spasms,
        )
        try:
            await asyncio.to_thread(self._exam_repo.add_ctg_row, ctg)
        except RepositoryError as exc:
            client.logger.error("Failed to save CTG data: %s", exc)
            return None
        client.logger.debug("CTG data saved successfully")
        await self.send_to_ml(ctg)
        return ctg