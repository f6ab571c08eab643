from datetime import datetime

import pytest

from ctgmonitor.database import connect, migrate
from ctgmonitor.entities import CTGData
from ctgmonitor.repository import (
    ExamRepository,
    InfoRepository,
    NotFoundError,
    RepositoryError,
)

SCHEMA = """-- +goose Up
CREATE TABLE examinations (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  client_id INTEGER, med_id INTEGER, doctor_id INTEGER,
  notes TEXT, status INTEGER, cloud_id INTEGER,
  start_time TIMESTAMP, end_time TIMESTAMP,
  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
  updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
  created_by INTEGER, updated_by INTEGER
);
CREATE TABLE ctg (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  examination_id INTEGER, sec_from_start REAL, uuid TEXT,
  bpm REAL, uterus REAL, spasms REAL, created_at TIMESTAMP
);
CREATE TABLE doctors (
  id INTEGER PRIMARY KEY, name TEXT, phone TEXT, specialization TEXT,
  license_number INTEGER, med_id INTEGER, is_active INTEGER,
  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE medicals (
  id INTEGER PRIMARY KEY, name TEXT, address TEXT, phone TEXT, email TEXT,
  license_number INTEGER, created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


@pytest.fixture
def db(tmp_path):
    folder = tmp_path / "migrations"
    folder.mkdir()
    (folder / "001_init.sql").write_text(SCHEMA, encoding="utf-8")
    dsn = str(tmp_path / "app.db")
    migrate("sqlite", dsn, folder)
    database = connect("sqlite", dsn)
    yield database
    database.close()


def test_needs_new_when_empty(db):
    repo = ExamRepository(db)
    assert repo.get_last_examination() is None
    assert repo.needs_new_examination() is True


def test_create_then_reuse_then_close(db):
    repo = ExamRepository(db)
    repo.create_examination()
    exam = repo.get_last_examination()
    assert exam.end_time is None
    assert isinstance(exam.start_time, datetime)
    assert exam.doctor_id == 1
    assert repo.needs_new_examination() is False
    repo.close_last_examination()
    closed = repo.get_last_examination()
    assert closed.end_time is not None and closed.id == exam.id
    assert repo.needs_new_examination() is True


def test_close_without_open_is_noop(db):
    repo = ExamRepository(db)
    repo.close_last_examination()
    assert repo.get_last_examination() is None


def test_add_ctg_row_requires_examination(db):
    with pytest.raises(RepositoryError, match="create examination first"):
        ExamRepository(db).add_ctg_row(CTGData("s1", 1.0, 140.0, 5.0, 0.0))


def test_add_ctg_row_stores_values(db):
    repo = ExamRepository(db)
    repo.create_examination()
    repo.add_ctg_row(CTGData("s1", 1.5, 140.5, 5.0, 2.0))
    row = db.fetch_one("SELECT * FROM ctg")
    assert row["uuid"] == "s1"
    assert row["bpm"] == 140.5
    assert row["sec_from_start"] == 1.5
    assert row["examination_id"] == repo.get_last_examination().id


def test_doctor_lookup(db):
    db.execute(
        "INSERT INTO doctors (id, name, phone, specialization, license_number, "
        "med_id, is_active) VALUES (?, ?, ?, ?, ?, ?, ?)",
        5, "Ann", "n/a", "obstetrics", 42, 3, 1,
    )
    doctor = InfoRepository(db).get_doctor_by_id(5)
    assert doctor.name == "Ann"
    assert doctor.license_number == 42
    assert doctor.is_active is True
    assert isinstance(doctor.created_at, datetime)


def test_medical_lookup(db):
    db.execute(
        "INSERT INTO medicals (id, name, address, phone, email, license_number) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        7, "Clinic", "Street", "n/a", "clinic@example.com", 9,
    )
    medical = InfoRepository(db).get_medical_by_id(7)
    assert medical.email == "clinic@example.com"
    assert medical.id == 7


def test_not_found_messages(db):
    repo = InfoRepository(db)
    with pytest.raises(NotFoundError, match="doctor with id 99 not found"):
        repo.get_doctor_by_id(99)
    with pytest.raises(NotFoundError, match="medical with id 99 not found"):
        repo.get_medical_by_id(99)