import asyncio
import json

import pytest
from aiohttp.test_utils import TestClient, TestServer

from ctgmonitor.config import Config, SensorEntity
from ctgmonitor.database import DatabaseError, connect
from ctgmonitor.repository import ExamRepository
from ctgmonitor.server import Server

SCHEMA = """-- +goose Up
CREATE TABLE doctors (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    phone TEXT NOT NULL,
    specialization TEXT NOT NULL,
    license_number INTEGER NOT NULL,
    med_id INTEGER NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE medicals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    address TEXT NOT NULL,
    phone TEXT NOT NULL,
    email TEXT NOT NULL,
    license_number INTEGER NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE examinations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id INTEGER,
    med_id INTEGER,
    doctor_id INTEGER,
    notes TEXT,
    status INTEGER,
    cloud_id INTEGER,
    start_time TIMESTAMP,
    end_time TIMESTAMP,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    created_by INTEGER,
    updated_by INTEGER
);
CREATE TABLE ctg (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    examination_id INTEGER,
    sec_from_start REAL,
    uuid TEXT,
    bpm REAL,
    uterus REAL,
    spasms REAL,
    created_at TIMESTAMP
);
"""


@pytest.fixture
def setup(tmp_path):
    migrations = tmp_path / "migrations"
    migrations.mkdir()
    (migrations / "00001_init.sql").write_text(SCHEMA, encoding="utf-8")
    cfg = Config()
    cfg.db.driver = "sqlite"
    cfg.db.dsn = str(tmp_path / "server.db")
    cfg.ml.addr = "127.0.0.1"
    cfg.ml.port = "1"
    cfg.sensors.entities.append(SensorEntity(uuid="sensor-1", token="token", ip="127.0.0.1:1"))
    return cfg, migrations


def test_empty_driver_fails(tmp_path):
    cfg = Config()
    cfg.db.dsn = str(tmp_path / "x.db")
    with pytest.raises(DatabaseError, match="empty driver"):
        Server(cfg)


def test_address_combines_host_and_port(setup):
    cfg, migrations = setup
    cfg.server.addr = "127.0.0.1"
    cfg.server.port = "8080"
    server = Server(cfg, migrations_dir=migrations)
    try:
        assert server.address == "127.0.0.1:8080"
    finally:
        server.db.close()


@pytest.mark.asyncio
async def test_http_routes(setup):
    cfg, migrations = setup
    server = Server(cfg, migrations_dir=migrations)
    async with TestClient(TestServer(server.create_app())) as client:
        health = await client.get("/api/health")
        assert health.status == 200
        assert (await health.json())["service"] == "backend_main"

        doctor = await client.get("/api/info/doctor?id=5")
        assert doctor.status == 404
        assert await doctor.json() == {"error": "doctor with id 5 not found"}

        stop = await client.get("/api/sensors/stop")
        assert stop.status == 200

        missing = await client.get("/ws/sensor")
        assert missing.status == 400

        unknown = await client.get("/ws/sensor?sensor_id=other")
        assert unknown.status == 403

        bad = await client.get(
            "/ws/sensor?sensor_id=sensor-1", headers={"X-Auth-Sensor-Token": "secret"}
        )
        assert bad.status == 401


async def _wait_for(predicate, attempts=200):
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(0.02)
    return predicate()


@pytest.mark.asyncio
async def test_frontend_receives_broadcast(setup):
    cfg, migrations = setup
    server = Server(cfg, migrations_dir=migrations)
    async with TestClient(TestServer(server.create_app())) as client:
        ws = await client.ws_connect("/ws/")
        assert await _wait_for(lambda: server.frontend_handler.client_count() == 1)
        assert server.frontend_handler.broadcast_to_frontend(b'{"ok":true}') is True
        received = await ws.receive_str(timeout=5)
        assert json.loads(received) == {"ok": True}
        await ws.close()


@pytest.mark.asyncio
async def test_sensor_session_records_and_closes_examination(setup):
    cfg, migrations = setup
    server = Server(cfg, migrations_dir=migrations)
    async with TestClient(TestServer(server.create_app())) as client:
        ws = await client.ws_connect(
            "/ws/sensor?sensor_id=sensor-1", headers={"X-Auth-Sensor-Token": "token"}
        )
        assert await _wait_for(lambda: server.sensor_handler.hub.client_count() == 1)
        await ws.send_str(
            json.dumps({"secFromStart": 1.5, "data": {"BPMChild": 140, "uterus": 10, "spasms": 0}})
        )
        check = connect("sqlite", cfg.db.dsn)
        try:
            assert await _wait_for(
                lambda: check.fetch_one("SELECT COUNT(*) AS n FROM ctg")["n"] == 1
            )
            row = check.fetch_one("SELECT uuid, bpm FROM ctg")
            assert row == {"uuid": "sensor-1", "bpm": 140.0}
            await ws.close()
            repo = ExamRepository(check)
            assert await _wait_for(lambda: repo.needs_new_examination())
            assert repo.get_last_examination().end_time is not None
        finally:
            check.close()