"""HTTP handlers for health, reference information and sensor control."""

from __future__ import annotations

import asyncio
import re
from typing import Any

from aiohttp import web

from .health import HealthService
from .repository import InfoRepository, RepositoryError
from .sensors_usecase import SensorsError, SensorsUseCase

_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _parse_id(text: str) -> int | None:
    """Parse a signed 64-bit decimal integer; None if it is not one."""
    if not _INTEGER.fullmatch(text):
        return None
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        return None
    return value


def _query_id(request: web.Request) -> int | web.Response:
    raw = request.query.get("id", "")
    if not raw:
        return _error(400, "id parameter is required")
    value = _parse_id(raw)
    if value is None:
        return _error(400, "invalid id parameter")
    return value


class HealthHandler:
    """Answers health checks."""

    def __init__(self, health_service: HealthService) -> None:
        self._service = health_service

    async def health_check(self, request: web.Request) -> web.Response:
        return web.json_response(self._service.get_health_status().to_dict())


class InfoHandler:
    """Serves doctor and medical facility records."""

    def __init__(self, info_repo: InfoRepository) -> None:
        self._repo = info_repo

    async def _lookup(self, request: web.Request, fetch: Any) -> web.Response:
        parsed = _query_id(request)
        if isinstance(parsed, web.Response):
            return parsed
        try:
            record = await asyncio.to_thread(fetch, parsed)
        except RepositoryError as exc:
            return _error(404, str(exc))
        return web.json_response(record.to_dict(), status=200)

    async def get_doctor(self, request: web.Request) -> web.Response:
        return await self._lookup(request, self._repo.get_doctor_by_id)

    async def get_medical(self, request: web.Request) -> web.Response:
        return await self._lookup(request, self._repo.get_medical_by_id)


class SensorsHandler:
    """Starts and stops sensors on request."""

    def __init__(self, sensors_usecase: SensorsUseCase) -> None:
        self._usecase = sensors_usecase

    async def start_sensor(self, request: web.Request) -> web.Response:
        try:
            sensor = await self._usecase.connect_sensor()
        except SensorsError as exc:
            return _error(400, str(exc))
        return web.json_response(
            {"message": "Sensor started successfully", "sensor": sensor.to_dict()},
            status=200,
        )

    async def stop_all_sensors(self, request: web.Request) -> web.Response:
        try:
            await self._usecase.disconnect_sensors()
        except SensorsError as exc:
            return _error(500, str(exc))
        return web.json_response(
            {"message": "All sensors stopped successfully"}, status=200
        )