"""Domain records: CTG samples, doctors, medical facilities and examinations."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class CTGData:
    """One cardiotocography sample from a sensor."""

    sensor_id: str = ""
    sec_from_start: float = 0.0
    bpm_child: float = 0.0
    uterus: float = 0.0
    spasms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sensorID": self.sensor_id,
            "secFromStart": self.sec_from_start,
            "BPMChild": self.bpm_child,
            "uterus": self.uterus,
            "spasms": self.spasms,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)


@dataclass
class Doctor:
    id: int
    name: str
    phone: str
    specialization: str
    license_number: int
    med_id: int
    is_active: bool
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "specialization": self.specialization,
            "license_number": self.license_number,
            "med_id": self.med_id,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Medical:
    id: int
    name: str
    address: str
    phone: str
    email: str
    license_number: int
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "license_number": self.license_number,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Examination:
    id: int
    client_id: int
    med_id: int
    doctor_id: int
    notes: str
    status: int
    cloud_id: int | None
    start_time: datetime | None
    end_time: datetime | None
    created_at: datetime | None
    updated_at: datetime | None
    created_by: int
    updated_by: int


@dataclass
class SensorData:
    bpm_child: float = 0.0
    uterus: float = 0.0
    spasms: float = 0.0


def _lookup(obj: dict, key: str) -> Any:
    if key in obj:
        return obj[key]
    lowered = key.lower()
    for name, value in obj.items():
        if name.lower() == lowered:
            return value
    return None


def _number(obj: dict, key: str) -> float:
    value = _lookup(obj, key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r} must be a number")
    return float(value)


def _string(obj: dict, key: str) -> str:
    value = _lookup(obj, key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


@dataclass
class MessageData:
    """A message as sent by a sensor over its websocket."""

    sensor_id: str = ""
    sec_from_start: float = 0.0
    data: SensorData = field(default_factory=SensorData)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "MessageData":
        try:
            obj = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValueError(f"invalid JSON: {exc}") from exc
        if obj is None:
            return cls()
        if not isinstance(obj, dict):
            raise ValueError("message must be a JSON object")
        inner = _lookup(obj, "data")
        if inner is None:
            inner = {}
        if not isinstance(inner, dict):
            raise ValueError("field 'data' must be an object")
        return cls(
            sensor_id=_string(obj, "sensorID"),
            sec_from_start=_number(obj, "secFromStart"),
            data=SensorData(
                bpm_child=_number(inner, "BPMChild"),
                uterus=_number(inner, "uterus"),
                spasms=_number(inner, "spasms"),
            ),
        )