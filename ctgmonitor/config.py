"""Application configuration loaded from YAML with environment overrides."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any

import yaml

ENV_DEV = "dev"

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str | int | float | None) -> float:
    """Parse a duration such as ``"1m30s"`` or ``"250ms"`` into seconds.

    Integers are taken as nanoseconds; ``None`` means zero.
    """
    if text is None:
        return 0.0
    if isinstance(text, bool):
        raise ValueError(f"invalid duration {text!r}")
    if isinstance(text, (int, float)):
        return text * 1e-9
    source = str(text)
    s = source.strip()
    sign = 1.0
    if s[:1] in "+-" and s:
        if s[0] == "-":
            sign = -1.0
        s = s[1:]
    if s == "0":
        return 0.0
    if not s:
        raise ValueError(f"invalid duration {source!r}")
    total = 0.0
    pos = 0
    while pos < len(s):
        match = _DURATION_PART.match(s, pos)
        if match is None:
            raise ValueError(f"invalid duration {source!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    return sign * total


@dataclass
class ServerConfig:
    addr: str = ""
    port: str = ""
    read_timeout: float = 0.0
    write_timeout: float = 0.0


@dataclass
class MLConfig:
    addr: str = ""
    port: str = ""


@dataclass
class SensorEntity:
    uuid: str = ""
    token: str = ""
    ip: str = ""


@dataclass
class SensorsConfig:
    handshake_timeout: float = 0.0
    entities: list[SensorEntity] = field(default_factory=list)


@dataclass
class DBConfig:
    driver: str = ""
    dsn: str = ""


@dataclass
class Config:
    env: str = ""
    server: ServerConfig = field(default_factory=ServerConfig)
    sensors: SensorsConfig = field(default_factory=SensorsConfig)
    db: DBConfig = field(default_factory=DBConfig)
    ml: MLConfig = field(default_factory=MLConfig)


def _str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        raise ValueError(f"expected a scalar, got {value!r}")
    return str(value)


def _section(data: dict, key: str) -> dict:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"section {key!r} must be a mapping")
    return value


def _from_mapping(data: dict) -> Config:
    server = _section(data, "server")
    sensors = _section(data, "sensors")
    db = _section(data, "db")
    ml = _section(data, "ml")

    raw_entities = sensors.get("entities") or []
    if not isinstance(raw_entities, list):
        raise ValueError("sensors.entities must be a list")
    entities = []
    for item in raw_entities:
        if not isinstance(item, dict):
            raise ValueError("each sensor entity must be a mapping")
        entities.append(
            SensorEntity(
                uuid=_str(item.get("uuid")),
                token=_str(item.get("token")),
                ip=_str(item.get("ip")),
            )
        )

    return Config(
        env=_str(data.get("env")),
        server=ServerConfig(
            addr=_str(server.get("addr")),
            port=_str(server.get("port")),
            read_timeout=parse_duration(server.get("read_timeout")),
            write_timeout=parse_duration(server.get("write_timeout")),
        ),
        sensors=SensorsConfig(
            handshake_timeout=parse_duration(sensors.get("handshake_timeout")),
            entities=entities,
        ),
        db=DBConfig(driver=_str(db.get("driver")), dsn=_str(db.get("dsn"))),
        ml=MLConfig(addr=_str(ml.get("addr")), port=_str(ml.get("port"))),
    )


_ENV_OVERRIDES = (
    ("server", "addr", "SERVER_SERVER_ADDR", "SERVER_ADDR"),
    ("server", "port", "SERVER_SERVER_PORT", "SERVER_PORT"),
    ("ml", "addr", "ML_ML_ADDR", "ML_ADDR"),
    ("ml", "port", "ML_ML_PORT", "ML_PORT"),
)


def _apply_env(cfg: Config) -> None:
    for section_name, attr, key, alt in _ENV_OVERRIDES:
        section = getattr(cfg, section_name)
        for name in (key, alt):
            if name in os.environ:
                setattr(section, attr, os.environ[name])
                break


def _override_sensor_ips(cfg: Config) -> None:
    for number, sensor in enumerate(cfg.sensors.entities, start=1):
        ip = os.environ.get(f"SENSOR_IP_{number}", "")
        if ip:
            sensor.ip = ip


def read_config(path: str | os.PathLike) -> Config:
    """Read the YAML file at ``path`` and apply environment overrides."""
    with open(path, encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("configuration root must be a mapping")
    cfg = _from_mapping(data)
    _apply_env(cfg)
    _override_sensor_ips(cfg)
    return cfg