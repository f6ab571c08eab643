"""Switching sensors on and off through their HTTP control API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp

from .config import Config


class SensorsError(Exception):
    """Raised when a sensor cannot be started."""


@dataclass
class SensorStatus:
    uuid: str
    ip: str
    connected: bool

    def to_dict(self) -> dict[str, Any]:
        return {"uuid": self.uuid, "ip": self.ip, "connected": self.connected}


_REQUEST_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ValueError, OSError)


class SensorsUseCase:
    """Starts configured sensors one at a time and stops them all at once."""

    def __init__(self, cfg: Config, logger: logging.Logger | None = None) -> None:
        self._cfg = cfg
        self._logger = logger or logging.getLogger(__name__)
        self._lock = asyncio.Lock()
        self._current = -1

    @staticmethod
    async def _get(url: str) -> int:
        async with aiohttp.ClientSession() as session:
            async with session.get(url) as response:
                return response.status

    async def connect_sensor(self) -> SensorStatus:
        """Switch on the next sensor that is not yet running."""
        async with self._lock:
            entities = self._cfg.sensors.entities
            if self._current >= len(entities) - 1:
                raise SensorsError("all sensors are already started")
            index = self._current + 1
            sensor = entities[index]
            url = f"http://{sensor.ip}/api/on"
            try:
                status = await self._get(url)
            except _REQUEST_ERRORS as exc:
                raise SensorsError(f"failed to start sensor {sensor.uuid}: {exc}") from exc
            if status != 200:
                raise SensorsError(f"sensor {sensor.uuid} returned status {status}")
            self._current = index
            self._logger.info(
                "Sensor started uuid=%s ip=%s index=%d", sensor.uuid, sensor.ip, index + 1
            )
            return SensorStatus(uuid=sensor.uuid, ip=sensor.ip, connected=True)

    async def disconnect_sensors(self) -> int:
        """Switch off every started sensor; return how many answered with 200."""
        async with self._lock:
            if self._current < 0:
                self._logger.info("No active sensors to stop")
                return 0
            stopped = 0
            for sensor in self._cfg.sensors.entities[: self._current + 1]:
                url = f"http://{sensor.ip}/api/off"
                try:
                    status = await self._get(url)
                except _REQUEST_ERRORS as exc:
                    self._logger.warning("Failed to stop sensor uuid=%s: %s", sensor.uuid, exc)
                    continue
                if status != 200:
                    self._logger.warning(
                        "Sensor returned error on stop uuid=%s status=%d", sensor.uuid, status
                    )
                else:
                    stopped += 1
            self._current = -1
            self._logger.info("All sensors stopped stopped_count=%d", stopped)
            return stopped