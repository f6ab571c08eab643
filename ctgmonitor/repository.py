"""Persistence of examinations, CTG samples and reference information."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any

from .database import Database, DatabaseError
from .entities import CTGData, Doctor, Examination, Medical

_TIME = re.compile(
    r"^(\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}:\d{2})(\.\d+)?\s*(Z|[+-]\d{2}:?\d{2})?"
)


class RepositoryError(Exception):
    """Raised when a repository operation fails."""


class NotFoundError(RepositoryError):
    """Raised when a requested record does not exist."""


def _now() -> str:
    return datetime.now().astimezone().isoformat(sep=" ")


def _parse_time(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    match = _TIME.match(str(value).strip())
    if match is None:
        raise RepositoryError(f"cannot parse time {value!r}")
    base, frac, tz = match.groups()
    result = datetime.strptime(base.replace("T", " "), "%Y-%m-%d %H:%M:%S")
    if frac:
        result = result.replace(microsecond=int((frac[1:] + "000000")[:6]))
    if tz:
        if tz == "Z":
            result = result.replace(tzinfo=timezone.utc)
        else:
            digits = tz[1:].replace(":", "")
            offset = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
            if tz[0] == "-":
                offset = -offset
            result = result.replace(tzinfo=timezone(offset))
    return result


class ExamRepository:
    """Stores examinations and the CTG samples recorded during them."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create_examination(self) -> None:
        try:
            self._db.execute(
                "INSERT INTO examinations (client_id, med_id, doctor_id, notes, "
                "status, start_time, created_by, updated_by) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                1, 1, 1, "", 0, _now(), 1, 1,
            )
        except DatabaseError as exc:
            raise RepositoryError(f"failed to create examination: {exc}") from exc

    def add_ctg_row(self, data: CTGData) -> None:
        try:
            row = self._db.fetch_one(
                "SELECT id FROM examinations ORDER BY id DESC LIMIT 1"
            )
        except DatabaseError as exc:
            raise RepositoryError(f"failed to get examination ID: {exc}") from exc
        if row is None:
            raise RepositoryError("no examinations found, create examination first")
        try:
            self._db.execute(
                "INSERT INTO ctg (examination_id, sec_from_start, uuid, bpm, "
                "uterus, spasms, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                row["id"], data.sec_from_start, data.sensor_id, data.bpm_child,
                data.uterus, data.spasms, _now(),
            )
        except DatabaseError as exc:
            raise RepositoryError(f"failed to insert CTG data: {exc}") from exc

    def get_last_examination(self) -> Examination | None:
        try:
            row = self._db.fetch_one(
                "SELECT id, client_id, med_id, doctor_id, notes, status, cloud_id, "
                "start_time, end_time, created_at, updated_at, created_by, updated_by "
                "FROM examinations ORDER BY id DESC LIMIT 1"
            )
        except DatabaseError as exc:
            raise RepositoryError(f"failed to get last examination: {exc}") from exc
        if row is None:
            return None
        return Examination(
            id=row["id"],
            client_id=row["client_id"],
            med_id=row["med_id"],
            doctor_id=row["doctor_id"],
            notes=row["notes"] or "",
            status=row["status"],
            cloud_id=row["cloud_id"],
            start_time=_parse_time(row["start_time"]),
            end_time=_parse_time(row["end_time"]),
            created_at=_parse_time(row["created_at"]),
            updated_at=_parse_time(row["updated_at"]),
            created_by=row["created_by"],
            updated_by=row["updated_by"],
        )

    def needs_new_examination(self) -> bool:
        """True when there is no examination or the last one has ended."""
        try:
            last = self.get_last_examination()
        except RepositoryError as exc:
            raise RepositoryError(f"failed to check last examination: {exc}") from exc
        return last is None or last.end_time is not None

    def close_last_examination(self) -> None:
        now = _now()
        try:
            self._db.execute(
                "UPDATE examinations SET end_time = ?, updated_at = ? "
                "WHERE id = (SELECT id FROM examinations ORDER BY id DESC LIMIT 1) "
                "AND end_time IS NULL",
                now, now,
            )
        except DatabaseError as exc:
            raise RepositoryError(f"failed to close examination: {exc}") from exc


class InfoRepository:
    """Looks up doctors and medical facilities."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def get_doctor_by_id(self, doctor_id: int) -> Doctor:
        try:
            row = self._db.fetch_one(
                "SELECT id, name, phone, specialization, license_number, med_id, "
                "is_active, created_at FROM doctors WHERE id = ?",
                doctor_id,
            )
        except DatabaseError as exc:
            raise RepositoryError(f"failed to get doctor: {exc}") from exc
        if row is None:
            raise NotFoundError(f"doctor with id {doctor_id} not found")
        return Doctor(
            id=row["id"],
            name=row["name"],
            phone=row["phone"],
            specialization=row["specialization"],
            license_number=row["license_number"],
            med_id=row["med_id"],
            is_active=bool(row["is_active"]),
            created_at=_parse_time(row["created_at"]),
        )

    def get_medical_by_id(self, medical_id: int) -> Medical:
        try:
            row = self._db.fetch_one(
                "SELECT id, name, address, phone, email, license_number, created_at "
                "FROM medicals WHERE id = ?",
                medical_id,
            )
        except DatabaseError as exc:
            raise RepositoryError(f"failed to get medical: {exc}") from exc
        if row is None:
            raise NotFoundError(f"medical with id {medical_id} not found")
        return Medical(
            id=row["id"],
            name=row["name"],
            address=row["address"],
            phone=row["phone"],
            email=row["email"],
            license_number=row["license_number"],
            created_at=_parse_time(row["created_at"]),
        )