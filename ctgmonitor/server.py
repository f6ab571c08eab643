"""Wiring of the database, services, handlers and HTTP routes."""

from __future__ import annotations

import logging
import time
from pathlib import Path

from aiohttp import web

from .config import Config
from .database import DatabaseError, connect, migrate
from .frontend import FrontendHub
from .handlers import HealthHandler, InfoHandler, SensorsHandler
from .health import HealthService
from .repository import ExamRepository, InfoRepository
from .sensor_ws import SensorHandler, SensorHandlerConfig
from .sensors_usecase import SensorsUseCase

_DEFAULT_MIGRATIONS = Path(__file__).resolve().parent / "migrations"


class Server:
    """The HTTP and websocket server with all of its parts."""

    def __init__(
        self,
        cfg: Config,
        logger: logging.Logger | None = None,
        migrations_dir: str | Path | None = None,
    ) -> None:
        self.cfg = cfg
        self._logger = logger or logging.getLogger("ctgmonitor")
        try:
            self._init_db(migrations_dir)
        except DatabaseError as exc:
            raise DatabaseError(f"init server: init db: {exc}") from exc

        self.health_service = HealthService()
        self.sensors_usecase = SensorsUseCase(cfg, self._logger)

        self.health_handler = HealthHandler(self.health_service)
        self.sensors_handler = SensorsHandler(self.sensors_usecase)
        self.info_handler = InfoHandler(InfoRepository(self.db))
        self.frontend_handler = FrontendHub(self._logger)
        self.sensor_handler = SensorHandler(
            SensorHandlerConfig(
                allowed_sensors_to_token={
                    sensor.uuid: sensor.token for sensor in cfg.sensors.entities
                },
                handshake_timeout=cfg.sensors.handshake_timeout,
            ),
            ExamRepository(self.db),
            self.frontend_handler,
            cfg.ml.addr,
            cfg.ml.port,
            logger=self._logger,
        )

    def _init_db(self, migrations_dir: str | Path | None) -> None:
        driver, dsn = self.cfg.db.driver, self.cfg.db.dsn
        self.db = connect(driver, dsn)
        directory = Path(migrations_dir) if migrations_dir is not None else _DEFAULT_MIGRATIONS
        if migrations_dir is None and not directory.is_dir():
            self._logger.warning("No migrations directory at %s", directory)
            return
        try:
            migrate(driver, dsn, directory)
        except DatabaseError as exc:
            self.db.close()
            raise DatabaseError(f"migrate db: {exc}") from exc

    @property
    def address(self) -> str:
        return f"{self.cfg.server.addr}:{self.cfg.server.port}"

    def create_app(self) -> web.Application:
        """Build the web application with its middleware and routes."""
        logger = self._logger

        @web.middleware
        async def log_requests(request: web.Request, handler):
            started = time.monotonic()
            response = await handler(request)
            logger.info(
                "%s %s from %s - %s in %.3fs",
                request.method,
                request.path_qs,
                request.headers.get("X-Real-IP")
                or request.headers.get("X-Forwarded-For", request.remote or ""),
                response.status,
                time.monotonic() - started,
            )
            return response

        @web.middleware
        async def recover(request: web.Request, handler):
            try:
                return await handler(request)
            except web.HTTPException:
                raise
            except Exception:
                logger.exception("Panic while handling %s %s", request.method, request.path)
                return web.Response(status=500)

        app = web.Application(middlewares=[log_requests, recover])
        router = app.router
        router.add_get("/api/health", self.health_handler.health_check)
        router.add_get("/api/sensors/start", self.sensors_handler.start_sensor)
        router.add_get("/api/sensors/stop", self.sensors_handler.stop_all_sensors)
        router.add_get("/api/info/doctor", self.info_handler.get_doctor)
        router.add_get("/api/info/medical", self.info_handler.get_medical)
        router.add_route("*", "/ws/sensor", self.sensor_handler.handle_websocket)
        router.add_route("*", "/ws/", self.frontend_handler.handle_websocket)
        router.add_route("*", "/ws", self.frontend_handler.handle_websocket)

        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def _on_startup(self, app: web.Application) -> None:
        self.frontend_handler.start()
        self.sensor_handler.start()

    async def _on_cleanup(self, app: web.Application) -> None:
        await self.sensor_handler.stop()
        await self.frontend_handler.stop()
        self.db.close()

    def run(self) -> None:
        """Serve until interrupted."""
        host = self.cfg.server.addr or None
        port = int(self.cfg.server.port) if self.cfg.server.port else 0
        self._logger.info("Server running address=%s", self.address)
        web.run_app(self.create_app(), host=host, port=port, print=None)